"""Translation between API block items and enforcement-ready rules."""

from collections.abc import Iterable, Mapping
from typing import Optional

from blockwarden.models import (
    AppCategory,
    BlockingCategory,
    BlockingProfile,
    BlockingRule,
    BlockItem,
    BlockList,
    BlockType,
    RuleKind,
)
from blockwarden.rules.defaults import APP_CATEGORY_MAPPING


def category_for_item(
    item: BlockItem,
    mapping: Optional[Mapping[str, BlockingCategory]] = None,
    categories: Optional[Mapping[str, AppCategory]] = None,
) -> BlockingCategory:
    """Pick the blocking category for an app-category item.

    Looks the item up in the mapping table by its identifier, then by the
    catalog entry's system id and name, then by the item name. Anything not
    in the table is Custom.
    """
    table = APP_CATEGORY_MAPPING if mapping is None else mapping
    keys = [item.identifier]
    catalog_entry = (categories or {}).get(item.identifier)
    if catalog_entry is not None:
        keys.extend([catalog_entry.system_id, catalog_entry.name])
    keys.append(item.name)

    for key in keys:
        category = table.get(key.lower())
        if category is not None:
            return category
    return BlockingCategory.CUSTOM


def item_to_rule(
    item: BlockItem,
    mapping: Optional[Mapping[str, BlockingCategory]] = None,
    categories: Optional[Mapping[str, AppCategory]] = None,
) -> BlockingRule:
    """Convert a block item into a blocking rule.

    Domains become domain rules and apps become app rules, both in the Custom
    category. App categories become app rules whose category comes from the
    mapping table.
    """
    if item.kind is BlockType.DOMAIN:
        kind, category = RuleKind.DOMAIN, BlockingCategory.CUSTOM
    elif item.kind is BlockType.APP:
        kind, category = RuleKind.APP, BlockingCategory.CUSTOM
    else:
        kind, category = RuleKind.APP, category_for_item(item, mapping, categories)

    return BlockingRule(
        name=item.name,
        kind=kind,
        pattern=item.identifier,
        category=category,
        is_active=item.is_active,
    )


def rule_to_item(rule: BlockingRule, list_id: str = "") -> BlockItem:
    """Convert a rule back into a block item for list creation.

    Keyword rules are stored as domains and IP rules as apps, the closest
    kinds the API knows.
    """
    if rule.kind in (RuleKind.DOMAIN, RuleKind.KEYWORD):
        kind = BlockType.DOMAIN
    else:
        kind = BlockType.APP
    return BlockItem(
        kind=kind,
        identifier=rule.pattern,
        name=rule.name,
        is_active=rule.is_active,
        list_id=list_id,
    )


def list_to_profile(block_list: BlockList) -> BlockingProfile:
    return BlockingProfile(
        name=block_list.name,
        description=block_list.description,
        is_active=block_list.is_active,
        rules=[item_to_rule(item) for item in block_list.items or []],
    )


def dedupe_rules(rules: Iterable[BlockingRule]) -> list[BlockingRule]:
    """Drop value-equal duplicates, keeping first-seen order."""
    seen: set[BlockingRule] = set()
    unique = []
    for rule in rules:
        if rule in seen:
            continue
        seen.add(rule)
        unique.append(rule)
    return unique
