"""Shared fakes and fixtures."""

import asyncio
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

import pytest

from blockwarden.errors import ServerError
from blockwarden.models import AppCategory, BlockItem, BlockList, BlockType, Schedule
from blockwarden.storage import SharedStateStore


class FakeClock:
    """Settable clock usable both as a datetime source and a monotonic timer."""

    def __init__(self, start: datetime) -> None:
        self.start = start
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def timer(self) -> float:
        return (self.now - self.start).total_seconds()

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeRepository:
    """In-memory stand-in for ConfigRepository that counts remote calls."""

    def __init__(
        self,
        lists: Optional[list[BlockList]] = None,
        schedules: Optional[list[Schedule]] = None,
        categories: Optional[list[AppCategory]] = None,
    ) -> None:
        self.lists = list(lists or [])
        self.schedules = list(schedules or [])
        self.categories = list(categories or [])
        self.calls: dict[str, int] = {}
        self.fail: set[str] = set()
        self.gates: dict[str, asyncio.Event] = {}

    async def _record(self, name: str) -> None:
        self.calls[name] = self.calls.get(name, 0) + 1
        gate = self.gates.pop(name, None)
        if gate is not None:
            await gate.wait()
        if name in self.fail:
            raise ServerError(500, f"{name} failed")

    def count(self, name: str) -> int:
        return self.calls.get(name, 0)

    async def fetch_block_lists(self) -> list[BlockList]:
        snapshot = list(self.lists)
        await self._record("fetch_block_lists")
        return snapshot

    async def fetch_block_list(self, list_id: str) -> BlockList:
        await self._record("fetch_block_list")
        return next(b for b in self.lists if b.id == list_id)

    async def create_block_list(self, name: str, description: str = "", is_active: bool = True) -> BlockList:
        await self._record("create_block_list")
        block_list = BlockList(name=name, description=description, is_active=is_active, items=[])
        self.lists.append(block_list)
        return block_list

    async def update_block_list(self, list_id: str, name=None, description=None, is_active=None) -> BlockList:
        await self._record("update_block_list")
        block_list = next(b for b in self.lists if b.id == list_id)
        if name is not None:
            block_list.name = name
        return block_list

    async def delete_block_list(self, list_id: str) -> None:
        await self._record("delete_block_list")
        self.lists = [b for b in self.lists if b.id != list_id]

    async def fetch_block_items(self, list_id: str) -> list[BlockItem]:
        await self._record("fetch_block_items")
        block_list = next(b for b in self.lists if b.id == list_id)
        return list(block_list.items or [])

    async def add_item(self, list_id: str, kind: BlockType, identifier: str, name: str, is_active: bool = True) -> BlockItem:
        await self._record("add_item")
        item = BlockItem(kind=kind, identifier=identifier, name=name, list_id=list_id, is_active=is_active)
        next(b for b in self.lists if b.id == list_id).items.append(item)
        return item

    async def add_items(self, list_id: str, items: list[BlockItem]) -> list[BlockItem]:
        await self._record("add_items")
        block_list = next(b for b in self.lists if b.id == list_id)
        block_list.items = (block_list.items or []) + list(items)
        return list(items)

    async def fetch_schedules(self) -> list[Schedule]:
        snapshot = list(self.schedules)
        await self._record("fetch_schedules")
        return snapshot

    async def create_schedule(self, schedule: Schedule) -> Schedule:
        await self._record("create_schedule")
        self.schedules.append(schedule)
        return schedule

    async def fetch_app_categories(self) -> list[AppCategory]:
        snapshot = list(self.categories)
        await self._record("fetch_app_categories")
        return snapshot


def make_list(name: str, *domains: str, list_id: Optional[str] = None) -> BlockList:
    block_list = BlockList(name=name, items=[])
    if list_id:
        block_list.id = list_id
    block_list.items = [
        BlockItem(kind=BlockType.DOMAIN, identifier=d, name=d, list_id=block_list.id)
        for d in domains
    ]
    return block_list


# Monday 2024-01-01 is weekday 2 (1 = Sunday)
MONDAY = datetime(2024, 1, 1, 12, 0)
EVERY_DAY = frozenset(range(1, 8))


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(MONDAY)


@pytest.fixture()
def tmp_state_path(tmp_path: Path) -> Path:
    """Provide a temporary state database path."""
    return tmp_path / "state.duckdb"


@pytest.fixture()
def store(tmp_state_path: Path) -> SharedStateStore:
    return SharedStateStore(tmp_state_path)
