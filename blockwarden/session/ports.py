"""Ports for OS authorization and interval scheduling."""

import asyncio
import logging
import os
import shutil
import subprocess
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Protocol

if TYPE_CHECKING:
    from blockwarden.enforcement import EnforcementAdapter

logger = logging.getLogger(__name__)


class AuthorizationStatus(str, Enum):
    NOT_DETERMINED = "not_determined"
    DENIED = "denied"
    APPROVED = "approved"


class Authorizer(Protocol):
    """Grants permission to install OS-level filters."""

    async def status(self) -> AuthorizationStatus: ...

    async def request(self) -> AuthorizationStatus: ...


class StaticAuthorizer:
    """Authorizer with a fixed answer, for tests and unmanaged hosts."""

    def __init__(self, approved: bool = True) -> None:
        self.approved = approved
        self.requests = 0

    async def status(self) -> AuthorizationStatus:
        return AuthorizationStatus.APPROVED if self.approved else AuthorizationStatus.DENIED

    async def request(self) -> AuthorizationStatus:
        self.requests += 1
        return await self.status()


class FileAccessAuthorizer:
    """Approves when the process may write the file the filter lives in.

    For the hosts-file port this is the same as running with root rights.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    async def status(self) -> AuthorizationStatus:
        if os.access(self.path, os.W_OK):
            return AuthorizationStatus.APPROVED
        return AuthorizationStatus.DENIED

    async def request(self) -> AuthorizationStatus:
        status = await self.status()
        if status is AuthorizationStatus.DENIED:
            logger.warning(f"No write access to {self.path}; run with elevated privileges")
        return status


class ActivityScheduler(Protocol):
    """OS facility that fires start/end callbacks for a monitored interval."""

    def start_monitoring(self, activity: str, start: datetime, end: datetime) -> None: ...

    def stop_monitoring(self, activity: str) -> None: ...


class LoopActivityScheduler:
    """Schedules the interval callbacks on the running asyncio loop.

    Used when the interactive and enforcement sides share one process. The
    callbacks are driven through the enforcement adapter exactly as an OS
    scheduler would drive them.
    """

    def __init__(self, adapter: "EnforcementAdapter") -> None:
        self.adapter = adapter
        self._handles: dict[str, list[asyncio.TimerHandle]] = {}
        self._tasks: set[asyncio.Task] = set()

    def start_monitoring(self, activity: str, start: datetime, end: datetime) -> None:
        self.stop_monitoring(activity)
        loop = asyncio.get_running_loop()
        session_id = f"{activity}:{start.isoformat()}"
        now = datetime.now(start.tzinfo)
        delay_start = max((start - now).total_seconds(), 0.0)
        delay_end = max((end - now).total_seconds(), 0.0)

        self._handles[activity] = [
            loop.call_later(delay_start, self._spawn, self.adapter.interval_did_start, session_id),
            loop.call_later(delay_end, self._spawn, self.adapter.interval_did_end, session_id),
        ]
        logger.debug(f"Scheduled {session_id} for {delay_end:.0f}s")

    def stop_monitoring(self, activity: str) -> None:
        for handle in self._handles.pop(activity, []):
            handle.cancel()

    def is_monitoring(self, activity: str) -> bool:
        return activity in self._handles

    def _spawn(self, callback, session_id: str) -> None:
        task = asyncio.ensure_future(callback(session_id, lambda: None))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)


class SystemdActivityScheduler:
    """Schedules the interval-end command as a transient systemd timer.

    The interval start is handled by the caller enforcing immediately, so
    only the end needs a timer. Without systemd-run the session still ends
    when `blockwarden session stop` runs.
    """

    def __init__(self, command: Optional[list[str]] = None) -> None:
        self.command = command or ["blockwarden", "interval-end"]

    @staticmethod
    def unit_name(activity: str) -> str:
        return activity.replace(".", "-")

    def start_monitoring(self, activity: str, start: datetime, end: datetime) -> None:
        if not shutil.which("systemd-run"):
            logger.warning("`systemd-run` not found. The session will not end on its own.")
            return
        seconds = max(int((end - start).total_seconds()), 1)
        session_id = f"{activity}:{start.isoformat()}"
        try:
            subprocess.run(
                [
                    "systemd-run",
                    f"--unit={self.unit_name(activity)}",
                    f"--on-active={seconds}",
                    *self.command,
                    session_id,
                ],
                check=True,
                capture_output=True,
            )
            logger.info(f"Scheduled interval end in {seconds}s via systemd-run")
        except (subprocess.CalledProcessError, FileNotFoundError) as e:
            logger.warning(f"Failed to schedule interval end via systemd-run: {e}")

    def stop_monitoring(self, activity: str) -> None:
        if not shutil.which("systemctl"):
            return
        subprocess.run(
            ["systemctl", "stop", f"{self.unit_name(activity)}.timer"],
            check=False,
            capture_output=True,
        )


class RecordingActivityScheduler:
    """Keeps scheduled intervals in memory without firing them."""

    def __init__(self) -> None:
        self.intervals: dict[str, tuple[datetime, datetime]] = {}
        self.stopped: list[str] = []

    def start_monitoring(self, activity: str, start: datetime, end: datetime) -> None:
        self.intervals[activity] = (start, end)

    def stop_monitoring(self, activity: str) -> None:
        self.stopped.append(activity)
        self.intervals.pop(activity, None)

    def current(self, activity: str) -> Optional[tuple[datetime, datetime]]:
        return self.intervals.get(activity)
