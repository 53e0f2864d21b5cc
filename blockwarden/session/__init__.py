"""Focus session control for the interactive process."""

from blockwarden.session.controller import (
    ACTIVITY_NAME,
    AuthorizationState,
    EnforcementState,
    SessionController,
)
from blockwarden.session.ports import (
    ActivityScheduler,
    AuthorizationStatus,
    Authorizer,
    FileAccessAuthorizer,
    LoopActivityScheduler,
    RecordingActivityScheduler,
    StaticAuthorizer,
    SystemdActivityScheduler,
)

__all__ = [
    "ACTIVITY_NAME",
    "ActivityScheduler",
    "AuthorizationState",
    "AuthorizationStatus",
    "Authorizer",
    "EnforcementState",
    "FileAccessAuthorizer",
    "LoopActivityScheduler",
    "RecordingActivityScheduler",
    "SessionController",
    "StaticAuthorizer",
    "SystemdActivityScheduler",
]
