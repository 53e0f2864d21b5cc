"""Block counters kept by the enforcement process."""

from datetime import date
from typing import Optional

from blockwarden.models import BlockingCategory, Statistics

DEFAULT_TIME_SAVED_PER_BLOCK = 30.0


def _most_blocked(counts: dict[str, int]) -> Optional[str]:
    # max() keeps the first key on ties, so insertion order breaks them
    if not counts:
        return None
    return max(counts, key=counts.__getitem__)


def apply_block(
    stats: Statistics,
    domain: Optional[str] = None,
    app: Optional[str] = None,
    category: Optional[str] = None,
    day: Optional[date] = None,
    time_saved: float = DEFAULT_TIME_SAVED_PER_BLOCK,
) -> Statistics:
    """Count one blocked request into a statistics snapshot, in place.

    Args:
        stats: Snapshot to update
        domain: Blocked domain, if the request was a web request
        app: Blocked app identifier, if the request came from an app
        category: Blocking category name; Custom when not given
        day: Day to count the block on; today when not given
        time_saved: Seconds of credit per block

    Returns:
        The same snapshot, for chaining
    """
    day = day or date.today()
    category = category or BlockingCategory.CUSTOM.value

    stats.blocked_requests_count += 1
    stats.blocked_by_day[day] = stats.blocked_by_day.get(day, 0) + 1
    stats.blocked_by_category[category] = stats.blocked_by_category.get(category, 0) + 1

    if domain:
        stats.blocked_domains[domain] = stats.blocked_domains.get(domain, 0) + 1
        stats.most_blocked_domain = _most_blocked(stats.blocked_domains)
    if app:
        stats.blocked_apps[app] = stats.blocked_apps.get(app, 0) + 1
        stats.most_blocked_app = _most_blocked(stats.blocked_apps)

    stats.time_saved_seconds += time_saved
    return stats
