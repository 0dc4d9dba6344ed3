"""Registry of running QQ accounts and their runtime status."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from qq_gateway.qq.monitor import QQMonitor


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class AccountRuntime:
    account_id: str
    running: bool = False
    mode: str | None = None  # "websocket" | "http"
    last_start_at: datetime | None = None
    last_stop_at: datetime | None = None
    last_error: str | None = None
    last_inbound_at: datetime | None = None
    last_outbound_at: datetime | None = None


class AccountRegistry:
    """Tracks the monitor and runtime status of every started account."""

    def __init__(self) -> None:
        self._monitors: dict[str, QQMonitor] = {}
        self._runtimes: dict[str, AccountRuntime] = {}

    def runtime(self, account_id: str) -> AccountRuntime:
        if account_id not in self._runtimes:
            self._runtimes[account_id] = AccountRuntime(account_id=account_id)
        return self._runtimes[account_id]

    def register(self, account_id: str, monitor: QQMonitor) -> None:
        self._monitors[account_id] = monitor
        rt = self.runtime(account_id)
        rt.running = True
        rt.mode = "websocket"
        rt.last_start_at = _now()
        rt.last_error = None

    def unregister(self, account_id: str) -> QQMonitor | None:
        monitor = self._monitors.pop(account_id, None)
        rt = self.runtime(account_id)
        rt.running = False
        rt.last_stop_at = _now()
        return monitor

    def get(self, account_id: str) -> QQMonitor | None:
        return self._monitors.get(account_id)

    def all(self) -> list[QQMonitor]:
        return list(self._monitors.values())

    def ids(self) -> list[str]:
        return list(self._monitors.keys())

    def record_error(self, account_id: str, error: str) -> None:
        self.runtime(account_id).last_error = error

    def record_inbound(self, account_id: str) -> None:
        self.runtime(account_id).last_inbound_at = _now()

    def record_outbound(self, account_id: str) -> None:
        self.runtime(account_id).last_outbound_at = _now()
