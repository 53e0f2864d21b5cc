"""Remote source of truth for block lists, items, schedules and app categories."""

import logging
from collections.abc import Callable
from typing import Any, Optional, TypeVar

from blockwarden.errors import DecodingError
from blockwarden.models import AppCategory, BlockItem, BlockList, BlockType, Schedule
from blockwarden.repository.client import ApiClient

logger = logging.getLogger(__name__)

T = TypeVar("T")

BLOCK_LISTS = "/block-lists"
SCHEDULES = "/schedules"
APP_CATEGORIES = "/app-categories"


def _decode_one(payload: Any, decoder: Callable[[dict], T], what: str) -> T:
    if not isinstance(payload, dict):
        raise DecodingError(f"Expected {what} object, got {type(payload).__name__}")
    try:
        return decoder(payload)
    except (KeyError, TypeError, ValueError) as e:
        raise DecodingError(f"Malformed {what}: {e!r}") from e


def _decode_many(payload: Any, decoder: Callable[[dict], T], what: str) -> list[T]:
    if not isinstance(payload, list):
        raise DecodingError(f"Expected list of {what}, got {type(payload).__name__}")
    return [_decode_one(entry, decoder, what) for entry in payload]


def _without_none(**fields: Any) -> dict[str, Any]:
    return {key: value for key, value in fields.items() if value is not None}


class ConfigRepository:
    """One method per remote collection endpoint.

    Errors from the underlying ApiClient propagate unchanged.
    """

    def __init__(self, client: ApiClient) -> None:
        self.client = client

    # Block lists

    async def fetch_block_lists(self) -> list[BlockList]:
        payload = await self.client.request("GET", BLOCK_LISTS)
        return _decode_many(payload, BlockList.from_api, "block list")

    async def fetch_block_list(self, list_id: str) -> BlockList:
        payload = await self.client.request("GET", f"{BLOCK_LISTS}/{list_id}")
        return _decode_one(payload, BlockList.from_api, "block list")

    async def create_block_list(
        self,
        name: str,
        description: str = "",
        is_active: bool = True,
    ) -> BlockList:
        body = {"name": name, "description": description, "is_active": is_active}
        payload = await self.client.request("POST", BLOCK_LISTS, body)
        return _decode_one(payload, BlockList.from_api, "block list")

    async def update_block_list(
        self,
        list_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> BlockList:
        body = _without_none(name=name, description=description, is_active=is_active)
        payload = await self.client.request("PATCH", f"{BLOCK_LISTS}/{list_id}", body)
        return _decode_one(payload, BlockList.from_api, "block list")

    async def delete_block_list(self, list_id: str) -> None:
        await self.client.request("DELETE", f"{BLOCK_LISTS}/{list_id}")

    # Block items

    async def fetch_block_items(self, list_id: str) -> list[BlockItem]:
        payload = await self.client.request("GET", f"{BLOCK_LISTS}/{list_id}/items")
        return _decode_many(payload, BlockItem.from_api, "block item")

    async def add_item(
        self,
        list_id: str,
        kind: BlockType,
        identifier: str,
        name: str,
        is_active: bool = True,
    ) -> BlockItem:
        body = {"type": kind.value, "identifier": identifier, "name": name, "is_active": is_active}
        payload = await self.client.request("POST", f"{BLOCK_LISTS}/{list_id}/items", body)
        return _decode_one(payload, BlockItem.from_api, "block item")

    async def add_items(self, list_id: str, items: list[BlockItem]) -> list[BlockItem]:
        """Create several items in one bulk call."""
        body = [item.to_api() for item in items]
        payload = await self.client.request("POST", f"{BLOCK_LISTS}/{list_id}/items/bulk", body)
        return _decode_many(payload, BlockItem.from_api, "block item")

    async def update_item(
        self,
        list_id: str,
        item_id: str,
        kind: Optional[BlockType] = None,
        identifier: Optional[str] = None,
        name: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> BlockItem:
        body = _without_none(
            type=kind.value if kind else None,
            identifier=identifier,
            name=name,
            is_active=is_active,
        )
        payload = await self.client.request(
            "PATCH", f"{BLOCK_LISTS}/{list_id}/items/{item_id}", body
        )
        return _decode_one(payload, BlockItem.from_api, "block item")

    async def delete_item(self, list_id: str, item_id: str) -> None:
        await self.client.request("DELETE", f"{BLOCK_LISTS}/{list_id}/items/{item_id}")

    # Schedules

    async def fetch_schedules(self) -> list[Schedule]:
        payload = await self.client.request("GET", SCHEDULES)
        return _decode_many(payload, Schedule.from_api, "schedule")

    async def create_schedule(self, schedule: Schedule) -> Schedule:
        payload = await self.client.request("POST", SCHEDULES, schedule.to_api())
        return _decode_one(payload, Schedule.from_api, "schedule")

    async def update_schedule(self, schedule: Schedule) -> Schedule:
        payload = await self.client.request("PATCH", f"{SCHEDULES}/{schedule.id}", schedule.to_api())
        return _decode_one(payload, Schedule.from_api, "schedule")

    async def delete_schedule(self, schedule_id: str) -> None:
        await self.client.request("DELETE", f"{SCHEDULES}/{schedule_id}")

    # App categories

    async def fetch_app_categories(self) -> list[AppCategory]:
        payload = await self.client.request("GET", APP_CATEGORIES)
        return _decode_many(payload, AppCategory.from_api, "app category")

    async def create_app_category(self, category: AppCategory) -> AppCategory:
        payload = await self.client.request("POST", APP_CATEGORIES, category.to_api())
        return _decode_one(payload, AppCategory.from_api, "app category")

    async def update_app_category(self, category: AppCategory) -> AppCategory:
        payload = await self.client.request(
            "PATCH", f"{APP_CATEGORIES}/{category.id}", category.to_api()
        )
        return _decode_one(payload, AppCategory.from_api, "app category")

    async def delete_app_category(self, category_id: str) -> None:
        await self.client.request("DELETE", f"{APP_CATEGORIES}/{category_id}")

    async def seed_app_categories(self) -> list[AppCategory]:
        """Ask the server to create its default category catalog."""
        payload = await self.client.request("POST", f"{APP_CATEGORIES}/seed", {})
        categories = _decode_many(payload, AppCategory.from_api, "app category")
        logger.info(f"Seeded {len(categories)} app categories")
        return categories
