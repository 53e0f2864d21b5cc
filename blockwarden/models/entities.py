"""Core entities for block lists, schedules, rules and enforcement state.

API-backed entities (BlockItem, BlockList, AppCategory, Schedule) decode from
the snake_case JSON the remote API returns via ``from_api`` and encode back via
``to_api``. Decoders raise KeyError/TypeError/ValueError on malformed payloads;
the repository turns those into DecodingError.
"""

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Optional


def _new_id() -> str:
    return str(uuid.uuid4())


class BlockType(str, Enum):
    """Kind of a block item as stored by the remote API."""

    DOMAIN = "website"
    APP = "app"
    APP_CATEGORY = "app_category"


class RuleKind(str, Enum):
    """Kind of an enforcement-ready blocking rule."""

    DOMAIN = "domain"
    APP = "app"
    KEYWORD = "keyword"
    IP_ADDRESS = "ipAddress"


class BlockingCategory(str, Enum):
    SOCIAL_MEDIA = "Social Media"
    ENTERTAINMENT = "Entertainment"
    NEWS = "News"
    SHOPPING = "Shopping"
    PRODUCTIVITY = "Productivity"
    CUSTOM = "Custom"


@dataclass
class BlockItem:
    """A single blockable target belonging to one block list.

    Attributes:
        kind: Domain, app, or app category
        identifier: Domain name, app bundle id, or category id
        name: Display name
        is_active: Inactive items are ignored when resolving rules
        list_id: Id of the owning block list
    """

    kind: BlockType
    identifier: str
    name: str
    list_id: str
    is_active: bool = True
    id: str = field(default_factory=_new_id)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "BlockItem":
        return cls(
            id=str(data["id"]),
            kind=BlockType(data["type"]),
            identifier=str(data["identifier"]),
            name=str(data.get("name", data["identifier"])),
            is_active=bool(data.get("is_active", True)),
            list_id=str(data.get("block_list_id", "")),
        )

    def to_api(self) -> dict[str, Any]:
        return {
            "type": self.kind.value,
            "identifier": self.identifier,
            "name": self.name,
            "is_active": self.is_active,
        }


@dataclass
class BlockList:
    """A named collection of block items owned by a user."""

    name: str
    description: str = ""
    is_active: bool = True
    is_default: bool = False
    owner_id: str = ""
    items: Optional[list[BlockItem]] = None
    id: str = field(default_factory=_new_id)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "BlockList":
        raw_items = data.get("items")
        items = None
        if raw_items is not None:
            if not isinstance(raw_items, list):
                raise TypeError("block list items must be a list")
            items = [BlockItem.from_api(item) for item in raw_items]
        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            description=str(data.get("description") or ""),
            is_active=bool(data.get("is_active", True)),
            is_default=bool(data.get("is_default", False)),
            owner_id=str(data.get("user_id") or ""),
            items=items,
        )

    def active_items(self) -> list[BlockItem]:
        return [item for item in (self.items or []) if item.is_active]


@dataclass
class AppCategory:
    """Catalog entry for a platform app category."""

    system_id: str
    name: str
    description: str = ""
    is_active: bool = True
    id: str = field(default_factory=_new_id)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "AppCategory":
        return cls(
            id=str(data["id"]),
            system_id=str(data["system_id"]),
            name=str(data["name"]),
            description=str(data.get("description") or ""),
            is_active=bool(data.get("is_active", True)),
        )

    def to_api(self) -> dict[str, Any]:
        return {
            "system_id": self.system_id,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
        }


@dataclass
class Schedule:
    """A recurring weekday + time-of-day window.

    Attributes:
        start_minute: Window start in minutes after midnight (0-1439)
        end_minute: Window end in minutes after midnight (0-1439); an end
            before the start wraps past midnight, an equal end is zero-width
        weekdays: Active days, 1 = Sunday ... 7 = Saturday
        list_ids: Block lists enforced while the window is open
        direct_item_ids: Items enforced regardless of list membership
    """

    start_minute: int
    end_minute: int
    weekdays: frozenset[int]
    is_active: bool = True
    list_ids: list[str] = field(default_factory=list)
    direct_item_ids: list[str] = field(default_factory=list)
    id: str = field(default_factory=_new_id)

    def __post_init__(self) -> None:
        for value in (self.start_minute, self.end_minute):
            if not 0 <= value < 24 * 60:
                raise ValueError(f"minute of day out of range: {value}")
        self.weekdays = frozenset(day for day in self.weekdays if 1 <= day <= 7)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Schedule":
        return cls(
            id=str(data["id"]),
            start_minute=int(data["start_hour"]) * 60 + int(data["start_minute"]),
            end_minute=int(data["end_hour"]) * 60 + int(data["end_minute"]),
            weekdays=frozenset(int(day) for day in data.get("days") or []),
            is_active=bool(data.get("active", True)),
            list_ids=[str(i) for i in data.get("block_list_ids") or []],
            direct_item_ids=[str(i) for i in data.get("direct_block_item_ids") or []],
        )

    def to_api(self) -> dict[str, Any]:
        return {
            "start_hour": self.start_minute // 60,
            "start_minute": self.start_minute % 60,
            "end_hour": self.end_minute // 60,
            "end_minute": self.end_minute % 60,
            "days": sorted(self.weekdays),
            "active": self.is_active,
            "block_list_ids": list(self.list_ids),
            "direct_block_item_ids": list(self.direct_item_ids),
        }


@dataclass(frozen=True)
class BlockingRule:
    """Canonical enforcement-ready rule.

    Equality and hashing cover name, kind, pattern and category only. The id is
    regenerated every time a rule is built from a block item, so comparing ids
    would never merge the same rule coming from two lists.
    """

    name: str
    kind: RuleKind
    pattern: str
    category: BlockingCategory = BlockingCategory.CUSTOM
    is_active: bool = field(default=True, compare=False)
    id: str = field(default_factory=_new_id, compare=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "kind": self.kind.value,
            "pattern": self.pattern,
            "category": self.category.value,
            "is_active": self.is_active,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BlockingRule":
        return cls(
            id=str(data.get("id") or _new_id()),
            name=str(data["name"]),
            kind=RuleKind(data["kind"]),
            pattern=str(data["pattern"]),
            category=BlockingCategory(data.get("category", BlockingCategory.CUSTOM.value)),
            is_active=bool(data.get("is_active", True)),
        )


@dataclass
class BlockingProfile:
    """A named bundle of rules toggled on and off as a unit."""

    name: str
    description: str = ""
    is_active: bool = False
    rules: list[BlockingRule] = field(default_factory=list)
    schedule: Optional[Schedule] = None
    id: str = field(default_factory=_new_id)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
            "rules": [rule.to_dict() for rule in self.rules],
            "schedule": None,
        }
        if self.schedule is not None:
            data["schedule"] = {"id": self.schedule.id, **self.schedule.to_api()}
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BlockingProfile":
        schedule_data = data.get("schedule")
        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            description=str(data.get("description") or ""),
            is_active=bool(data.get("is_active", False)),
            rules=[BlockingRule.from_dict(rule) for rule in data.get("rules") or []],
            schedule=Schedule.from_api(schedule_data) if schedule_data else None,
        )


@dataclass
class Session:
    """Metadata of the monitored enforcement window."""

    is_active: bool = False
    start_time: Optional[datetime] = None
    duration_seconds: float = 0.0
    last_active_list_id: Optional[str] = None

    @property
    def end_time(self) -> Optional[datetime]:
        if self.start_time is None:
            return None
        return self.start_time + timedelta(seconds=self.duration_seconds)


@dataclass
class Selection:
    """Opaque app and domain identifiers chosen in an external picker."""

    apps: frozenset[str] = frozenset()
    domains: frozenset[str] = frozenset()

    def is_empty(self) -> bool:
        return not self.apps and not self.domains

    def to_rules(self) -> list[BlockingRule]:
        rules = [BlockingRule(name=app, kind=RuleKind.APP, pattern=app) for app in sorted(self.apps)]
        rules.extend(
            BlockingRule(name=domain, kind=RuleKind.DOMAIN, pattern=domain)
            for domain in sorted(self.domains)
        )
        return rules

    def to_dict(self) -> dict[str, list[str]]:
        return {"apps": sorted(self.apps), "domains": sorted(self.domains)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Selection":
        return cls(
            apps=frozenset(data.get("apps") or []),
            domains=frozenset(data.get("domains") or []),
        )


@dataclass
class Statistics:
    """Enforcement counters shared back to the interactive process.

    blocked_domains and blocked_apps hold the per-key counters behind
    most_blocked_domain / most_blocked_app so that the arg-max can be
    recomputed after the enforcement process restarts.
    """

    blocked_requests_count: int = 0
    time_saved_seconds: float = 0.0
    blocked_by_category: dict[str, int] = field(default_factory=dict)
    blocked_by_day: dict[date, int] = field(default_factory=dict)
    most_blocked_domain: Optional[str] = None
    most_blocked_app: Optional[str] = None
    blocked_domains: dict[str, int] = field(default_factory=dict)
    blocked_apps: dict[str, int] = field(default_factory=dict)

    def blocked_on(self, day: date) -> int:
        return self.blocked_by_day.get(day, 0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "blocked_requests_count": self.blocked_requests_count,
            "time_saved_seconds": self.time_saved_seconds,
            "blocked_by_category": dict(self.blocked_by_category),
            "blocked_by_day": {day.isoformat(): count for day, count in self.blocked_by_day.items()},
            "most_blocked_domain": self.most_blocked_domain,
            "most_blocked_app": self.most_blocked_app,
            "blocked_domains": dict(self.blocked_domains),
            "blocked_apps": dict(self.blocked_apps),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Statistics":
        return cls(
            blocked_requests_count=int(data.get("blocked_requests_count", 0)),
            time_saved_seconds=float(data.get("time_saved_seconds", 0.0)),
            blocked_by_category=dict(data.get("blocked_by_category") or {}),
            blocked_by_day={
                date.fromisoformat(day): int(count)
                for day, count in (data.get("blocked_by_day") or {}).items()
            },
            most_blocked_domain=data.get("most_blocked_domain"),
            most_blocked_app=data.get("most_blocked_app"),
            blocked_domains=dict(data.get("blocked_domains") or {}),
            blocked_apps=dict(data.get("blocked_apps") or {}),
        )
