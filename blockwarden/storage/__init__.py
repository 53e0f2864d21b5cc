"""Cross-process shared state."""

from blockwarden.storage.state_store import SharedStateStore

__all__ = ["SharedStateStore"]
