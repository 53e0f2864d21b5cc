"""Rule aggregation: cached remote config, schedules and profiles to active rules.

The aggregator keeps one snapshot per remote collection family (block lists,
schedules, app categories) in a TTL cache, resolves which rules apply at a
given instant, and owns the local blocking profiles.
"""

import asyncio
import logging
import time
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import TYPE_CHECKING, Any, Optional

from cachetools import TTLCache

from blockwarden.errors import ProfileNotFound
from blockwarden.models import (
    AppCategory,
    BlockingCategory,
    BlockingProfile,
    BlockingRule,
    BlockItem,
    BlockList,
    BlockType,
    Schedule,
)
from blockwarden.repository import ConfigRepository
from blockwarden.rules.defaults import default_profiles, default_rules
from blockwarden.rules.schedule import is_schedule_active
from blockwarden.rules.translate import dedupe_rules, item_to_rule, rule_to_item

if TYPE_CHECKING:
    from blockwarden.storage import SharedStateStore

logger = logging.getLogger(__name__)

BLOCK_LISTS = "block_lists"
SCHEDULES = "schedules"
APP_CATEGORIES = "app_categories"
FAMILIES = (BLOCK_LISTS, SCHEDULES, APP_CATEGORIES)

DEFAULT_CACHE_TIMEOUT = 120.0


class RuleAggregator:
    """Computes the active rule set from remote config and local profiles.

    Reads within the cache timeout are served from the snapshot without a
    remote call. Mutations go through an asyncio lock and invalidate the
    family they touch. For each family only the most recently started fetch
    may write the cache; results of superseded fetches are never stored.
    """

    def __init__(
        self,
        repository: ConfigRepository,
        cache_timeout: float = DEFAULT_CACHE_TIMEOUT,
        timer: Callable[[], float] = time.monotonic,
        store: Optional["SharedStateStore"] = None,
        category_mapping: Optional[Mapping[str, BlockingCategory]] = None,
    ) -> None:
        """Initialize the aggregator.

        Args:
            repository: Remote config repository
            cache_timeout: Seconds a fetched family stays fresh
            timer: Monotonic clock used for cache expiry
            store: Shared state store for persisting profiles
            category_mapping: App-category identifier to blocking category
                table, lowercased keys; defaults to the built-in table
        """
        self.repository = repository
        self.cache_timeout = cache_timeout
        self.store = store
        self.category_mapping = category_mapping
        self._cache: TTLCache = TTLCache(maxsize=len(FAMILIES), ttl=cache_timeout, timer=timer)
        self._generation = {family: 0 for family in FAMILIES}
        self._lock = asyncio.Lock()

        self.profiles: list[BlockingProfile] = []
        self.default_rules: list[BlockingRule] = []
        self._load_profiles()

    # Cached reads

    async def get_block_lists(self) -> list[BlockList]:
        return await self._get(BLOCK_LISTS, self.repository.fetch_block_lists)

    async def get_schedules(self) -> list[Schedule]:
        return await self._get(SCHEDULES, self.repository.fetch_schedules)

    async def get_app_categories(self) -> list[AppCategory]:
        return await self._get(APP_CATEGORIES, self.repository.fetch_app_categories)

    async def _get(self, family: str, fetch: Callable[[], Any]) -> list:
        cached = self._cache.get(family)
        if cached is not None:
            logger.debug(f"Cache hit for {family}")
            return cached
        return await self._fetch(family, fetch)

    async def _fetch(self, family: str, fetch: Callable[[], Any]) -> list:
        self._generation[family] += 1
        generation = self._generation[family]
        logger.debug(f"Fetching {family} (generation {generation})")

        result = await fetch()

        if generation != self._generation[family]:
            logger.debug(f"Discarding stale {family} fetch (generation {generation})")
            return await self._get(family, fetch)

        self._cache[family] = result
        return result

    def invalidate(self, family: Optional[str] = None) -> None:
        """Drop one cached family, or all of them."""
        for name in [family] if family else FAMILIES:
            self._cache.pop(name, None)
            # Any fetch still in flight for this family is now stale
            self._generation[name] += 1

    async def refresh_all(self) -> None:
        """Refetch every family concurrently.

        Nothing is committed to the cache unless all three fetches succeed.
        """
        generations = {}
        for family in FAMILIES:
            self._generation[family] += 1
            generations[family] = self._generation[family]

        lists, schedules, categories = await asyncio.gather(
            self.repository.fetch_block_lists(),
            self.repository.fetch_schedules(),
            self.repository.fetch_app_categories(),
        )

        for family, value in zip(FAMILIES, (lists, schedules, categories)):
            if generations[family] == self._generation[family]:
                self._cache[family] = value
        logger.info(
            f"Refreshed {len(lists)} block lists, {len(schedules)} schedules, "
            f"{len(categories)} app categories"
        )

    # Rule resolution

    async def get_block_list(self, list_id: str) -> Optional[BlockList]:
        for block_list in await self.get_block_lists():
            if block_list.id == list_id:
                return block_list
        return None

    async def find_block_list_by_name(self, name: str) -> Optional[BlockList]:
        for block_list in await self.get_block_lists():
            if block_list.name == name:
                return block_list
        return None

    async def get_list_items(self, list_id: str) -> list[BlockItem]:
        """Items of one list, fetched when the cached snapshot omits them."""
        block_list = await self.get_block_list(list_id)
        if block_list is not None and block_list.items is not None:
            return block_list.items
        return await self.repository.fetch_block_items(list_id)

    async def get_list_rules(self, list_id: str) -> list[BlockingRule]:
        items = await self.get_list_items(list_id)
        categories = self._categories_by_id()
        return [
            item_to_rule(item, self.category_mapping, categories)
            for item in items
            if item.is_active
        ]

    async def compute_active_rules(self, at: Optional[datetime] = None) -> list[BlockingRule]:
        """Compute the rules that apply at an instant.

        Ensures the block lists and schedules are fresh, then resolves from
        the cache. Repository errors propagate.
        """
        await asyncio.gather(self.get_block_lists(), self.get_schedules())
        return self.active_rules_from_cache(at)

    def active_rules_from_cache(self, at: Optional[datetime] = None) -> list[BlockingRule]:
        """Compute the active rules from cached snapshots only, never fetching."""
        at = at or datetime.now()
        lists: list[BlockList] = self._cache.get(BLOCK_LISTS) or []
        schedules: list[Schedule] = self._cache.get(SCHEDULES) or []
        categories = self._categories_by_id()
        lists_by_id = {block_list.id: block_list for block_list in lists}
        items_by_id = {
            item.id: item for block_list in lists for item in block_list.items or []
        }

        rules: list[BlockingRule] = []
        for schedule in schedules:
            if not is_schedule_active(schedule, at):
                continue

            for list_id in schedule.list_ids:
                block_list = lists_by_id.get(list_id)
                if block_list is None:
                    logger.debug(f"Schedule {schedule.id} references missing list {list_id}")
                    continue
                rules.extend(
                    item_to_rule(item, self.category_mapping, categories)
                    for item in block_list.active_items()
                )

            for item_id in schedule.direct_item_ids:
                item = items_by_id.get(item_id)
                if item is None:
                    logger.debug(f"Schedule {schedule.id} references missing item {item_id}")
                    continue
                if item.is_active:
                    rules.append(item_to_rule(item, self.category_mapping, categories))

        profile = self.active_profile()
        if profile is not None:
            rules.extend(rule for rule in profile.rules if rule.is_active)
            rules.extend(rule for rule in self.default_rules if rule.is_active)

        return dedupe_rules(rules)

    def _categories_by_id(self) -> dict[str, AppCategory]:
        categories: list[AppCategory] = self._cache.get(APP_CATEGORIES) or []
        by_id = {}
        for category in categories:
            by_id[category.id] = category
            by_id[category.system_id] = category
        return by_id

    # Remote mutations

    async def create_block_list(
        self,
        name: str,
        description: str = "",
        rules: Optional[list[BlockingRule]] = None,
    ) -> BlockList:
        """Create a list and, when rules are given, its items in one bulk call."""
        async with self._lock:
            block_list = await self.repository.create_block_list(name, description)
            if rules:
                items = [rule_to_item(rule, block_list.id) for rule in rules]
                block_list.items = await self.repository.add_items(block_list.id, items)
            self.invalidate(BLOCK_LISTS)
        logger.info(f"Created block list '{name}' ({block_list.id})")
        return block_list

    async def update_block_list(
        self,
        list_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> BlockList:
        async with self._lock:
            block_list = await self.repository.update_block_list(
                list_id, name=name, description=description, is_active=is_active
            )
            self.invalidate(BLOCK_LISTS)
        return block_list

    async def delete_block_list(self, list_id: str) -> None:
        async with self._lock:
            await self.repository.delete_block_list(list_id)
            self.invalidate(BLOCK_LISTS)

    async def add_item(
        self, list_id: str, kind: BlockType, identifier: str, name: str
    ) -> BlockItem:
        async with self._lock:
            item = await self.repository.add_item(list_id, kind, identifier, name)
            self.invalidate(BLOCK_LISTS)
        return item

    async def update_item(self, list_id: str, item_id: str, **changes: Any) -> BlockItem:
        async with self._lock:
            item = await self.repository.update_item(list_id, item_id, **changes)
            self.invalidate(BLOCK_LISTS)
        return item

    async def delete_item(self, list_id: str, item_id: str) -> None:
        async with self._lock:
            await self.repository.delete_item(list_id, item_id)
            self.invalidate(BLOCK_LISTS)

    async def create_schedule(self, schedule: Schedule) -> Schedule:
        async with self._lock:
            created = await self.repository.create_schedule(schedule)
            self.invalidate(SCHEDULES)
        return created

    async def update_schedule(self, schedule: Schedule) -> Schedule:
        async with self._lock:
            updated = await self.repository.update_schedule(schedule)
            self.invalidate(SCHEDULES)
        return updated

    async def delete_schedule(self, schedule_id: str) -> None:
        async with self._lock:
            await self.repository.delete_schedule(schedule_id)
            self.invalidate(SCHEDULES)

    async def create_app_category(self, category: AppCategory) -> AppCategory:
        async with self._lock:
            created = await self.repository.create_app_category(category)
            self.invalidate(APP_CATEGORIES)
        return created

    async def update_app_category(self, category: AppCategory) -> AppCategory:
        async with self._lock:
            updated = await self.repository.update_app_category(category)
            self.invalidate(APP_CATEGORIES)
        return updated

    async def delete_app_category(self, category_id: str) -> None:
        async with self._lock:
            await self.repository.delete_app_category(category_id)
            self.invalidate(APP_CATEGORIES)

    async def seed_app_categories(self) -> list[AppCategory]:
        async with self._lock:
            categories = await self.repository.seed_app_categories()
            self.invalidate(APP_CATEGORIES)
        return categories

    # Profiles

    def active_profile(self) -> Optional[BlockingProfile]:
        for profile in self.profiles:
            if profile.is_active:
                return profile
        return None

    def get_profile(self, profile_id: str) -> BlockingProfile:
        for profile in self.profiles:
            if profile.id == profile_id:
                return profile
        raise ProfileNotFound(f"No profile with id {profile_id}")

    def find_profile(self, name: str) -> Optional[BlockingProfile]:
        for profile in self.profiles:
            if profile.name.lower() == name.lower():
                return profile
        return None

    async def activate_profile(self, profile_id: str) -> BlockingProfile:
        """Mark exactly one profile active.

        Raises:
            ProfileNotFound: If no profile has this id
        """
        async with self._lock:
            target = self.get_profile(profile_id)
            for profile in self.profiles:
                profile.is_active = profile is target
            self._save_profiles()
        logger.info(f"Activated profile '{target.name}'")
        return target

    async def deactivate_profiles(self) -> None:
        async with self._lock:
            for profile in self.profiles:
                profile.is_active = False
            self._save_profiles()

    async def add_profile(self, profile: BlockingProfile) -> BlockingProfile:
        async with self._lock:
            if profile.is_active:
                for other in self.profiles:
                    other.is_active = False
            self.profiles.append(profile)
            self._save_profiles()
        return profile

    async def update_profile(
        self,
        profile_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        schedule: Optional[Schedule] = None,
    ) -> BlockingProfile:
        async with self._lock:
            profile = self.get_profile(profile_id)
            if name is not None:
                profile.name = name
            if description is not None:
                profile.description = description
            if schedule is not None:
                profile.schedule = schedule
            self._save_profiles()
        return profile

    async def delete_profile(self, profile_id: str) -> None:
        async with self._lock:
            profile = self.get_profile(profile_id)
            self.profiles.remove(profile)
            self._save_profiles()

    async def add_rule(
        self, rule: BlockingRule, profile_id: Optional[str] = None
    ) -> BlockingRule:
        """Append a rule to a profile, or to the default rules when no id is given."""
        async with self._lock:
            self._rules_for(profile_id).append(rule)
            self._save_profiles()
        return rule

    async def update_rule(
        self, rule: BlockingRule, profile_id: Optional[str] = None
    ) -> BlockingRule:
        """Replace the rule with the same id."""
        async with self._lock:
            rules = self._rules_for(profile_id)
            for index, existing in enumerate(rules):
                if existing.id == rule.id:
                    rules[index] = rule
                    break
            else:
                raise KeyError(f"No rule with id {rule.id}")
            self._save_profiles()
        return rule

    async def delete_rule(self, rule_id: str, profile_id: Optional[str] = None) -> None:
        async with self._lock:
            rules = self._rules_for(profile_id)
            rules[:] = [rule for rule in rules if rule.id != rule_id]
            self._save_profiles()

    def _rules_for(self, profile_id: Optional[str]) -> list[BlockingRule]:
        if profile_id is None:
            return self.default_rules
        return self.get_profile(profile_id).rules

    def _load_profiles(self) -> None:
        snapshot = self.store.load_profiles() if self.store is not None else None
        if snapshot is None:
            self.profiles = default_profiles()
            self.default_rules = default_rules()
            return

        self.profiles = [BlockingProfile.from_dict(p) for p in snapshot.get("profiles", [])]
        self.default_rules = [
            BlockingRule.from_dict(r) for r in snapshot.get("default_rules", [])
        ]
        logger.debug(f"Loaded {len(self.profiles)} profiles from state store")

    def _save_profiles(self) -> None:
        if self.store is None:
            return
        self.store.save_profiles(
            {
                "profiles": [profile.to_dict() for profile in self.profiles],
                "default_rules": [rule.to_dict() for rule in self.default_rules],
            }
        )

    def reload_profiles(self) -> None:
        """Re-read profiles from the store, picking up another process's changes."""
        if self.store is not None:
            self._load_profiles()
