"""Enforcement-process entry points driven by the OS interval scheduler.

The enforcement process can be started and killed at any time, so every
callback rebuilds its state from the shared store and the aggregator instead
of relying on anything kept in memory. Nothing here raises: failures are
logged and the scheduler's completion callback always runs.
"""

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Optional

from blockwarden.enforcement.ports import EnforcementPort
from blockwarden.enforcement.statistics import DEFAULT_TIME_SAVED_PER_BLOCK, apply_block
from blockwarden.models import BlockingRule
from blockwarden.rules import RuleAggregator, RuleMatcher, dedupe_rules
from blockwarden.storage import SharedStateStore

logger = logging.getLogger(__name__)


class EnforcementAdapter:
    """Applies and clears rules when monitored intervals start and end."""

    def __init__(
        self,
        store: SharedStateStore,
        port: EnforcementPort,
        aggregator: Optional[RuleAggregator] = None,
        clock: Callable[[], datetime] = datetime.now,
        time_saved_per_block: float = DEFAULT_TIME_SAVED_PER_BLOCK,
    ) -> None:
        """Initialize the adapter.

        Args:
            store: Shared state written by the interactive process
            port: OS filter the rules are applied through
            aggregator: Source of schedule and profile rules; optional so the
                adapter still enforces stored selections when offline
            clock: Source of the current time
            time_saved_per_block: Seconds credited per blocked request
        """
        self.store = store
        self.port = port
        self.aggregator = aggregator
        self.clock = clock
        self.time_saved_per_block = time_saved_per_block
        self._matcher: Optional[RuleMatcher] = None

    async def gather_rules(self) -> list[BlockingRule]:
        """Collect the stored selection, last active list and scheduled rules.

        Each source is read independently; one failing does not stop the
        others from being enforced.
        """
        rules: list[BlockingRule] = []

        try:
            selection = self.store.load_selection()
            if selection is not None:
                rules.extend(selection.to_rules())
        except Exception as e:
            logger.warning(f"Could not load stored selection: {e}")

        if self.aggregator is None:
            return dedupe_rules(rules)

        try:
            list_id = self.store.last_active_list_id
            if list_id:
                rules.extend(await self.aggregator.get_list_rules(list_id))
        except Exception as e:
            logger.warning(f"Could not load rules of the last active list: {e}")

        try:
            self.aggregator.reload_profiles()
            rules.extend(await self.aggregator.compute_active_rules(self.clock()))
        except Exception as e:
            logger.warning(f"Could not compute scheduled rules: {e}")

        return dedupe_rules(rules)

    async def interval_did_start(self, session_id: str, done: Callable[[], None]) -> None:
        """Apply the full rule set at the start of a monitored interval."""
        try:
            rules = await self.gather_rules()
            self.port.clear()
            self.port.apply(rules)
            self._matcher = RuleMatcher(rules)
            logger.info(f"Interval {session_id} started, enforcing {len(rules)} rules")
        except Exception:
            logger.exception(f"Failed to start enforcement for interval {session_id}")
        finally:
            done()

    async def interval_did_end(self, session_id: str, done: Callable[[], None]) -> None:
        """Lift every block and close the session."""
        try:
            self._matcher = None
            self.port.clear()
            self.store.end_session()
            logger.info(f"Interval {session_id} ended, enforcement cleared")
        except Exception:
            logger.exception(f"Failed to end enforcement for interval {session_id}")
        finally:
            done()

    def record_blocked(
        self,
        domain: Optional[str] = None,
        app: Optional[str] = None,
        category: Optional[str] = None,
        at: Optional[datetime] = None,
    ) -> None:
        """Count one blocked request into the shared statistics."""
        day = (at or self.clock()).date()
        try:
            self.store.update_statistics(
                lambda stats: apply_block(
                    stats,
                    domain=domain,
                    app=app,
                    category=category,
                    day=day,
                    time_saved=self.time_saved_per_block,
                )
            )
        except Exception:
            logger.exception(f"Failed to record blocked request ({domain or app})")

    async def handle_request(
        self, host: Optional[str] = None, app: Optional[str] = None
    ) -> Optional[BlockingRule]:
        """Check one outgoing request and count it if blocked.

        Returns:
            The rule that blocked the request, or None when it is allowed
        """
        try:
            if self._matcher is None:
                if not self.store.is_blocking_enabled:
                    return None
                # Restarted mid-session: rebuild from the store
                self._matcher = RuleMatcher(await self.gather_rules())

            rule = self._matcher.match(host=host, app=app)
        except Exception:
            logger.exception(f"Failed to evaluate request ({host or app})")
            return None

        if rule is not None:
            logger.debug(f"Blocked {host or app} by rule '{rule.name}'")
            self.record_blocked(domain=host, app=app, category=rule.category.value)
        return rule
