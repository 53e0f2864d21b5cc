"""Interactive-process focus session control.

The controller owns authorization, immediate enforcement of a block list or
picker selection, and the monitored interval handed to the OS scheduler.
Everything the enforcement process needs later is written to the shared
state store.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from blockwarden.enforcement.ports import EnforcementPort
from blockwarden.errors import (
    APIError,
    FailedToCreateDefaultList,
    InvalidSelection,
    NotAuthorized,
)
from blockwarden.models import BlockList, Selection
from blockwarden.rules import RuleAggregator
from blockwarden.rules.defaults import DEFAULT_LIST_DESCRIPTION, DEFAULT_LIST_NAME, starter_rules
from blockwarden.session.ports import ActivityScheduler, AuthorizationStatus, Authorizer
from blockwarden.storage import SharedStateStore

logger = logging.getLogger(__name__)

ACTIVITY_NAME = "blockwarden.focusSession"


class AuthorizationState(str, Enum):
    IDLE = "idle"
    AUTHORIZING = "authorizing"
    AUTHORIZED = "authorized"
    ERROR = "error"


class EnforcementState(str, Enum):
    IDLE = "idle"
    ENABLING = "enabling"
    ACTIVE = "active"
    ENDING = "ending"


StateCallback = Callable[[AuthorizationState, EnforcementState], None]


class SessionController:
    """Starts, monitors and stops focus sessions."""

    def __init__(
        self,
        aggregator: RuleAggregator,
        store: SharedStateStore,
        port: EnforcementPort,
        authorizer: Authorizer,
        scheduler: ActivityScheduler,
        clock: Callable[[], datetime] = datetime.now,
        on_state_change: Optional[StateCallback] = None,
    ) -> None:
        """Initialize the controller.

        Args:
            aggregator: Rule aggregator (and, through it, the repository)
            store: Shared state read by the enforcement process
            port: OS filter for immediate enforcement
            authorizer: Grants permission to install filters
            scheduler: OS interval scheduler for monitored sessions
            clock: Source of the current time
            on_state_change: Called with both states after every transition
        """
        self.aggregator = aggregator
        self.store = store
        self.port = port
        self.authorizer = authorizer
        self.scheduler = scheduler
        self.clock = clock
        self.on_state_change = on_state_change

        self.authorization_state = AuthorizationState.IDLE
        self.enforcement_state = EnforcementState.IDLE
        self.selection = Selection()
        self.active_list_id: Optional[str] = store.last_active_list_id

    def _transition(
        self,
        authorization: Optional[AuthorizationState] = None,
        enforcement: Optional[EnforcementState] = None,
    ) -> None:
        if authorization is not None:
            self.authorization_state = authorization
        if enforcement is not None:
            self.enforcement_state = enforcement
        logger.debug(
            f"Session state: authorization={self.authorization_state.value} "
            f"enforcement={self.enforcement_state.value}"
        )
        if self.on_state_change is not None:
            self.on_state_change(self.authorization_state, self.enforcement_state)

    # Authorization

    async def check_authorization(self) -> bool:
        """Query the current authorization without prompting."""
        status = await self.authorizer.status()
        if status is AuthorizationStatus.APPROVED:
            if self.authorization_state is not AuthorizationState.AUTHORIZED:
                self._transition(authorization=AuthorizationState.AUTHORIZED)
            return True
        return False

    async def request_authorization(self) -> bool:
        """Ask for authorization. Idempotent once granted.

        Raises:
            NotAuthorized: If the request is denied
        """
        if self.authorization_state is AuthorizationState.AUTHORIZED:
            return True

        self._transition(authorization=AuthorizationState.AUTHORIZING)
        status = await self.authorizer.request()
        if status is not AuthorizationStatus.APPROVED:
            self._transition(authorization=AuthorizationState.ERROR)
            raise NotAuthorized(f"Authorization {status.value}")

        self._transition(authorization=AuthorizationState.AUTHORIZED)
        return True

    async def _require_authorization(self) -> None:
        if not await self.check_authorization():
            raise NotAuthorized("Blocking is not authorized")

    # Enforcement

    async def enable_blocking(self, list_id: Optional[str] = None) -> str:
        """Apply a block list immediately.

        Falls back to the last active list, then to the default list, which
        is created with the starter rules if it does not exist yet.

        Returns:
            Id of the list now being enforced

        Raises:
            NotAuthorized: If blocking is not authorized
            FailedToCreateDefaultList: If the default list can't be found or created
        """
        await self._require_authorization()
        previous = self.enforcement_state
        self._transition(enforcement=EnforcementState.ENABLING)
        try:
            resolved = list_id or self.active_list_id or self.store.last_active_list_id
            if not resolved:
                resolved = await self._get_or_create_default_list()

            rules = await self.aggregator.get_list_rules(resolved)
            self.port.clear()
            self.port.apply(rules)
        except Exception:
            self._transition(enforcement=previous)
            raise

        self.active_list_id = resolved
        self.store.last_active_list_id = resolved
        self.selection = Selection()
        self.store.clear_selection()
        self.store.is_blocking_enabled = True
        self._transition(enforcement=EnforcementState.ACTIVE)
        logger.info(f"Blocking enabled with list {resolved} ({len(rules)} rules)")
        return resolved

    async def _get_or_create_default_list(self) -> str:
        try:
            existing = await self.aggregator.find_block_list_by_name(DEFAULT_LIST_NAME)
            if existing is not None:
                return existing.id
            created = await self.aggregator.create_block_list(
                DEFAULT_LIST_NAME, DEFAULT_LIST_DESCRIPTION, starter_rules()
            )
            return created.id
        except APIError as e:
            logger.warning(f"Could not get or create the default block list: {e}")
            raise FailedToCreateDefaultList(str(e)) from e

    async def enable_blocking_with_selection(self, selection: Selection) -> None:
        """Persist a picker selection and enforce it immediately.

        The selection replaces any block list as the enforced source.
        """
        await self._require_authorization()
        self._transition(enforcement=EnforcementState.ENABLING)
        self.selection = selection
        self.store.save_selection(selection, self.clock())
        self.active_list_id = None
        self.store.last_active_list_id = None
        self.port.clear()
        self.port.apply(selection.to_rules())
        self.store.is_blocking_enabled = True
        self._transition(enforcement=EnforcementState.ACTIVE)
        logger.info(
            f"Blocking enabled with selection of {len(selection.apps)} apps "
            f"and {len(selection.domains)} domains"
        )

    def disable_blocking(self) -> None:
        """Lift all blocks and forget the session and selection.

        The last active list id is kept so the next enable resumes it. Safe
        to call repeatedly.
        """
        if self.enforcement_state is not EnforcementState.IDLE:
            self._transition(enforcement=EnforcementState.ENDING)
        self.scheduler.stop_monitoring(ACTIVITY_NAME)
        self.port.clear()
        self.store.end_session()
        self.active_list_id = None
        self.selection = Selection()
        self.store.clear_selection()
        self._transition(enforcement=EnforcementState.IDLE)
        logger.info("Blocking disabled")

    # Monitored sessions

    def start_monitoring(self, duration_seconds: float) -> tuple[datetime, datetime]:
        """Hand a [now, now + duration) interval to the OS scheduler.

        Any interval already being monitored is stopped first.

        Returns:
            Start and end of the scheduled interval
        """
        if duration_seconds <= 0:
            raise ValueError("duration must be positive")

        self.scheduler.stop_monitoring(ACTIVITY_NAME)
        start = self.clock()
        end = start + timedelta(seconds=duration_seconds)
        self.scheduler.start_monitoring(ACTIVITY_NAME, start, end)
        self.store.start_session(duration_seconds, list_id=self.active_list_id, started_at=start)
        logger.info(f"Monitoring started for {duration_seconds / 60:.0f} minutes")
        return start, end

    def stop_monitoring(self) -> None:
        """Stop the monitored interval and lift enforcement. Idempotent."""
        if self.enforcement_state is not EnforcementState.IDLE:
            self._transition(enforcement=EnforcementState.ENDING)
        self.scheduler.stop_monitoring(ACTIVITY_NAME)
        self.port.clear()
        self.store.end_session()
        self._transition(enforcement=EnforcementState.IDLE)
        logger.info("Monitoring stopped")

    def get_remaining_time(self) -> Optional[timedelta]:
        return self.store.remaining_time(self.clock())

    # Selections

    async def save_selection_as_list(self, name: str, description: str = "") -> BlockList:
        """Turn the current selection into a remote block list.

        Raises:
            InvalidSelection: If nothing is selected
        """
        selection = self.selection
        if selection.is_empty():
            stored = self.store.load_selection()
            if stored is not None:
                selection = stored
        if selection.is_empty():
            raise InvalidSelection("Selection has no apps and no domains")

        block_list = await self.aggregator.create_block_list(
            name, description, selection.to_rules()
        )
        self.active_list_id = block_list.id
        self.store.last_active_list_id = block_list.id
        self.selection = Selection()
        self.store.clear_selection()
        logger.info(f"Saved selection as block list '{name}' ({block_list.id})")
        return block_list
