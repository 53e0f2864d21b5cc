"""Rule resolution: schedules, translation, matching and aggregation."""

from blockwarden.rules.aggregator import RuleAggregator
from blockwarden.rules.matcher import RuleMatcher
from blockwarden.rules.schedule import is_schedule_active, window_contains
from blockwarden.rules.translate import dedupe_rules, item_to_rule, list_to_profile

__all__ = [
    "RuleAggregator",
    "RuleMatcher",
    "dedupe_rules",
    "is_schedule_active",
    "item_to_rule",
    "list_to_profile",
    "window_contains",
]
