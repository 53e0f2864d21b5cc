"""Data models for blockwarden."""

from blockwarden.models.entities import (
    AppCategory,
    BlockingCategory,
    BlockingProfile,
    BlockingRule,
    BlockItem,
    BlockList,
    BlockType,
    RuleKind,
    Schedule,
    Selection,
    Session,
    Statistics,
)

__all__ = [
    "AppCategory",
    "BlockingCategory",
    "BlockingProfile",
    "BlockingRule",
    "BlockItem",
    "BlockList",
    "BlockType",
    "RuleKind",
    "Schedule",
    "Selection",
    "Session",
    "Statistics",
]
