"""Tests for the focus session controller."""

import asyncio
from datetime import datetime, timedelta

import pytest
from conftest import FakeClock, FakeRepository, make_list

from blockwarden.enforcement import EnforcementAdapter, InMemoryEnforcementPort
from blockwarden.errors import FailedToCreateDefaultList, InvalidSelection, NotAuthorized
from blockwarden.models import Selection
from blockwarden.rules import RuleAggregator
from blockwarden.rules.defaults import DEFAULT_LIST_NAME
from blockwarden.session import (
    ACTIVITY_NAME,
    AuthorizationState,
    EnforcementState,
    LoopActivityScheduler,
    RecordingActivityScheduler,
    SessionController,
    StaticAuthorizer,
)
from blockwarden.storage import SharedStateStore


class Harness:
    def __init__(self, clock: FakeClock, approved: bool = True, repo: FakeRepository | None = None) -> None:
        self.repo = repo or FakeRepository()
        self.store = SharedStateStore(":memory:")
        self.port = InMemoryEnforcementPort()
        self.authorizer = StaticAuthorizer(approved)
        self.scheduler = RecordingActivityScheduler()
        self.transitions: list[tuple[AuthorizationState, EnforcementState]] = []
        self.controller = SessionController(
            RuleAggregator(self.repo),
            self.store,
            self.port,
            self.authorizer,
            self.scheduler,
            clock=clock,
            on_state_change=lambda a, e: self.transitions.append((a, e)),
        )


class TestAuthorization:
    @pytest.mark.asyncio
    async def test_request_is_idempotent(self, clock: FakeClock) -> None:
        h = Harness(clock)

        assert await h.controller.request_authorization()
        assert await h.controller.request_authorization()

        assert h.authorizer.requests == 1
        assert h.controller.authorization_state is AuthorizationState.AUTHORIZED

    @pytest.mark.asyncio
    async def test_denied_request(self, clock: FakeClock) -> None:
        h = Harness(clock, approved=False)

        with pytest.raises(NotAuthorized):
            await h.controller.request_authorization()

        assert h.controller.authorization_state is AuthorizationState.ERROR
        assert [a for a, _ in h.transitions] == [AuthorizationState.AUTHORIZING, AuthorizationState.ERROR]

    @pytest.mark.asyncio
    async def test_enable_requires_authorization(self, clock: FakeClock) -> None:
        h = Harness(clock, approved=False)

        with pytest.raises(NotAuthorized):
            await h.controller.enable_blocking("l1")

        assert h.port.apply_calls == 0
        assert h.store.is_blocking_enabled is False


class TestEnableBlocking:
    @pytest.mark.asyncio
    async def test_explicit_list(self, clock: FakeClock) -> None:
        h = Harness(clock, repo=FakeRepository(lists=[make_list("Work", "x.com", list_id="l1")]))

        assert await h.controller.enable_blocking("l1") == "l1"

        assert [r.pattern for r in h.port.rules] == ["x.com"]
        assert h.store.last_active_list_id == "l1"
        assert h.store.is_blocking_enabled is True
        assert h.controller.enforcement_state is EnforcementState.ACTIVE

    @pytest.mark.asyncio
    async def test_falls_back_to_last_active_list(self, clock: FakeClock) -> None:
        h = Harness(clock, repo=FakeRepository(lists=[make_list("Work", "x.com", list_id="l1")]))
        h.store.last_active_list_id = "l1"
        h.controller.active_list_id = None

        assert await h.controller.enable_blocking() == "l1"

    @pytest.mark.asyncio
    async def test_creates_default_list_once(self, clock: FakeClock) -> None:
        h = Harness(clock)

        first = await h.controller.enable_blocking()
        h.controller.disable_blocking()
        h.store.last_active_list_id = None
        h.controller.aggregator.invalidate()
        second = await h.controller.enable_blocking()

        assert first == second
        assert h.repo.count("create_block_list") == 1
        assert [b.name for b in h.repo.lists] == [DEFAULT_LIST_NAME]
        assert [r.pattern for r in h.port.rules] == [
            "facebook.com", "instagram.com", "twitter.com", "tiktok.com", "youtube.com",
        ]

    @pytest.mark.asyncio
    async def test_reuses_existing_default_list(self, clock: FakeClock) -> None:
        existing = make_list(DEFAULT_LIST_NAME, "x.com", list_id="d1")
        h = Harness(clock, repo=FakeRepository(lists=[existing]))

        assert await h.controller.enable_blocking() == "d1"
        assert h.repo.count("create_block_list") == 0

    @pytest.mark.asyncio
    async def test_default_list_failure(self, clock: FakeClock) -> None:
        h = Harness(clock)
        h.repo.fail.add("create_block_list")

        with pytest.raises(FailedToCreateDefaultList):
            await h.controller.enable_blocking()

        assert h.controller.enforcement_state is EnforcementState.IDLE

    @pytest.mark.asyncio
    async def test_with_selection(self, clock: FakeClock) -> None:
        h = Harness(clock)
        selection = Selection(apps=frozenset({"com.example.chat"}), domains=frozenset({"x.com"}))

        await h.controller.enable_blocking_with_selection(selection)

        assert [r.pattern for r in h.port.rules] == ["com.example.chat", "x.com"]
        assert h.store.has_stored_selection is True
        assert h.store.selection_timestamp == clock.now
        assert h.store.load_selection() == selection


class TestMonitoring:
    @pytest.mark.asyncio
    async def test_remaining_time(self, clock: FakeClock) -> None:
        h = Harness(clock)
        h.controller.start_monitoring(600)

        clock.advance(599)
        remaining = h.controller.get_remaining_time()
        assert remaining is not None
        assert abs(remaining.total_seconds() - 1) < 0.5

        clock.advance(2)
        assert h.controller.get_remaining_time() is None

    def test_schedules_interval(self, clock: FakeClock) -> None:
        h = Harness(clock)

        start, end = h.controller.start_monitoring(600)

        assert h.scheduler.current(ACTIVITY_NAME) == (clock.now, clock.now + timedelta(seconds=600))
        assert h.store.session_start_time == start
        assert h.store.session_duration == 600

    def test_restart_stops_prior_window(self, clock: FakeClock) -> None:
        h = Harness(clock)

        h.controller.start_monitoring(600)
        clock.advance(60)
        h.controller.start_monitoring(300)

        assert h.scheduler.stopped.count(ACTIVITY_NAME) == 2
        assert h.scheduler.current(ACTIVITY_NAME) == (clock.now, clock.now + timedelta(seconds=300))
        assert h.store.session_duration == 300

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self, clock: FakeClock) -> None:
        h = Harness(clock, repo=FakeRepository(lists=[make_list("Work", "x.com", list_id="l1")]))
        await h.controller.enable_blocking("l1")
        h.controller.start_monitoring(600)

        h.controller.stop_monitoring()
        h.controller.stop_monitoring()

        assert h.port.rules == []
        assert h.store.get_session().is_active is False
        assert h.controller.get_remaining_time() is None
        assert h.controller.enforcement_state is EnforcementState.IDLE

    @pytest.mark.asyncio
    async def test_disable_blocking(self, clock: FakeClock) -> None:
        h = Harness(clock, repo=FakeRepository(lists=[make_list("Work", "x.com", list_id="l1")]))
        await h.controller.enable_blocking("l1")

        h.controller.disable_blocking()
        h.controller.disable_blocking()

        assert h.port.rules == []
        assert h.store.is_blocking_enabled is False
        assert h.controller.active_list_id is None


class TestSaveSelection:
    @pytest.mark.asyncio
    async def test_empty_selection_rejected(self, clock: FakeClock) -> None:
        h = Harness(clock)
        with pytest.raises(InvalidSelection):
            await h.controller.save_selection_as_list("Mine")

    @pytest.mark.asyncio
    async def test_creates_list_with_bulk_items(self, clock: FakeClock) -> None:
        h = Harness(clock)
        await h.controller.enable_blocking_with_selection(Selection(domains=frozenset({"x.com", "y.com"})))

        block_list = await h.controller.save_selection_as_list("Mine", "from picker")

        assert h.repo.count("add_items") == 1
        assert sorted(i.identifier for i in block_list.items) == ["x.com", "y.com"]
        assert h.store.last_active_list_id == block_list.id


class TestLoopActivityScheduler:
    @pytest.mark.asyncio
    async def test_fires_start_and_end(self) -> None:
        store = SharedStateStore(":memory:")
        store.save_selection(Selection(domains=frozenset({"x.com"})))
        port = InMemoryEnforcementPort()
        scheduler = LoopActivityScheduler(EnforcementAdapter(store, port))
        now = datetime.now()

        scheduler.start_monitoring(ACTIVITY_NAME, now, now + timedelta(milliseconds=50))
        await asyncio.sleep(0.01)
        assert [r.pattern for r in port.rules] == ["x.com"]

        await asyncio.sleep(0.2)
        assert port.rules == []
        assert port.clear_calls == 2

    @pytest.mark.asyncio
    async def test_stop_cancels_pending_callbacks(self) -> None:
        port = InMemoryEnforcementPort()
        scheduler = LoopActivityScheduler(EnforcementAdapter(SharedStateStore(":memory:"), port))
        now = datetime.now()

        scheduler.start_monitoring(ACTIVITY_NAME, now + timedelta(seconds=1), now + timedelta(seconds=2))
        scheduler.stop_monitoring(ACTIVITY_NAME)
        await asyncio.sleep(0.01)

        assert not scheduler.is_monitoring(ACTIVITY_NAME)
        assert port.apply_calls == 0


class TestSingleRuleSource:
    @pytest.mark.asyncio
    async def test_list_replaces_earlier_selection(self, clock: FakeClock) -> None:
        h = Harness(clock, repo=FakeRepository(lists=[make_list("Work", "work-block.com", list_id="l1")]))
        await h.controller.enable_blocking_with_selection(Selection(domains=frozenset({"old-pick.com"})))
        h.controller.disable_blocking()

        await h.controller.enable_blocking("l1")
        h.controller.start_monitoring(600)

        port = InMemoryEnforcementPort()
        adapter = EnforcementAdapter(h.store, port, h.controller.aggregator, clock=clock)
        await adapter.interval_did_start("s1", lambda: None)

        assert [r.pattern for r in h.port.rules] == ["work-block.com"]
        assert [r.pattern for r in port.rules] == ["work-block.com"]

    @pytest.mark.asyncio
    async def test_selection_replaces_list(self, clock: FakeClock) -> None:
        h = Harness(clock, repo=FakeRepository(lists=[make_list("Work", "work-block.com", list_id="l1")]))
        await h.controller.enable_blocking("l1")

        await h.controller.enable_blocking_with_selection(Selection(domains=frozenset({"pick.com"})))

        port = InMemoryEnforcementPort()
        adapter = EnforcementAdapter(h.store, port, h.controller.aggregator, clock=clock)
        await adapter.interval_did_start("s1", lambda: None)

        assert h.store.last_active_list_id is None
        assert [r.pattern for r in port.rules] == ["pick.com"]

    @pytest.mark.asyncio
    async def test_disable_forgets_selection(self, clock: FakeClock) -> None:
        h = Harness(clock)
        await h.controller.enable_blocking_with_selection(Selection(domains=frozenset({"x.com"})))

        h.controller.disable_blocking()

        assert h.store.has_stored_selection is False
        assert h.store.load_selection() is None
