"""WebSocket event monitor: one persistent bridge connection per account.

The monitor reconnects after a fixed interval whenever the socket closes
without a deliberate ``close()`` or abort, with no cap on attempts. Frames of
one connection are handled strictly in order: the next frame is not read
until the handlers for the previous one have returned.
"""

from __future__ import annotations

import asyncio
import inspect
from enum import StrEnum
from typing import Any, Awaitable, Callable, Optional

import structlog
import websockets

from qq_gateway.log import get_logger
from qq_gateway.qq.accounts import ResolvedAccount
from qq_gateway.qq.events import MessageEvent, decode_event

logger = get_logger(__name__)

DEFAULT_RECONNECT_INTERVAL_MS = 5000
DEFAULT_CONNECTION_TIMEOUT_MS = 30000

EventHandler = Callable[[Any], Optional[Awaitable[None]]]
MessageHandler = Callable[[MessageEvent], Optional[Awaitable[None]]]
ErrorHandler = Callable[[Exception], None]


class MonitorConfigError(ValueError):
    """The account cannot be monitored as configured (e.g. no WebSocket URL)."""


class MonitorState(StrEnum):
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECT_SCHEDULED = "reconnect_scheduled"
    CLOSED = "closed"


async def _maybe_await(result: Any) -> None:
    if inspect.isawaitable(result):
        await result


class QQMonitor:
    """Owns the socket, reconnect timer, and closing flag for one account."""

    def __init__(
        self,
        account: ResolvedAccount,
        on_event: EventHandler,
        on_message: MessageHandler | None = None,
        on_error: ErrorHandler | None = None,
        *,
        abort_event: asyncio.Event | None = None,
        connect: Callable[..., Any] | None = None,
    ):
        if not account.ws_url:
            raise MonitorConfigError(
                f"WebSocket URL not configured for QQ account '{account.account_id}'"
            )
        self._account = account
        self._on_event = on_event
        self._on_message = on_message
        self._on_error = on_error
        self._abort_event = abort_event
        self._connect_factory = connect or websockets.connect

        self._ws: Any = None
        self._task: asyncio.Task[None] | None = None
        self._close_task: asyncio.Future[Any] | None = None
        self._abort_watcher: asyncio.Task[None] | None = None
        self._reconnect_handle: asyncio.TimerHandle | None = None
        self._is_closing = False
        self._state = MonitorState.IDLE
        self.connect_attempts = 0

    @property
    def account_id(self) -> str:
        return self._account.account_id

    @property
    def state(self) -> MonitorState:
        return self._state

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_handle is not None

    @property
    def reconnect_interval_s(self) -> float:
        interval_ms = self._account.config.reconnect_interval_ms
        if interval_ms is None:
            interval_ms = DEFAULT_RECONNECT_INTERVAL_MS
        return max(interval_ms, 0) / 1000

    def _headers(self) -> dict[str, str]:
        if self._account.access_token:
            return {"Authorization": f"Bearer {self._account.access_token}"}
        return {}

    def _aborted(self) -> bool:
        return self._abort_event is not None and self._abort_event.is_set()

    def start(self) -> QQMonitor:
        """Open the first connection. Must be called from a running event loop."""
        if self._state is not MonitorState.IDLE:
            return self
        if self._abort_event is not None:
            self._abort_watcher = asyncio.get_running_loop().create_task(self._watch_abort())
        self._connect()
        return self

    async def _watch_abort(self) -> None:
        assert self._abort_event is not None
        await self._abort_event.wait()
        self.close()

    def _connect(self) -> None:
        self._reconnect_handle = None
        if self._is_closing or self._aborted():
            self._state = MonitorState.CLOSED
            return
        self._state = MonitorState.CONNECTING
        self.connect_attempts += 1
        self._task = asyncio.get_running_loop().create_task(self._run_connection())

    async def _run_connection(self) -> None:
        structlog.contextvars.bind_contextvars(account_id=self.account_id)
        timeout_ms = self._account.config.connection_timeout_ms or DEFAULT_CONNECTION_TIMEOUT_MS
        close_code: int | None = None
        try:
            async with self._connect_factory(
                self._account.ws_url,
                additional_headers=self._headers(),
                open_timeout=timeout_ms / 1000,
            ) as ws:
                self._ws = ws
                self._state = MonitorState.CONNECTED
                logger.info("qq_ws_connected", attempt=self.connect_attempts)
                if self._is_closing:
                    await ws.close()
                async for frame in ws:
                    await self._handle_frame(frame)
                close_code = getattr(ws, "close_code", None)
        except websockets.ConnectionClosed as e:
            close_code = e.rcvd.code if e.rcvd is not None else None
            logger.warning("qq_ws_connection_lost", code=close_code)
        except Exception as e:
            logger.warning("qq_ws_error", error=str(e))
            self._report_error(e)
        finally:
            self._ws = None
        self._handle_close(close_code)

    async def _handle_frame(self, frame: str | bytes) -> None:
        event = decode_event(frame)
        if event is None:
            return
        try:
            await _maybe_await(self._on_event(event))
            if isinstance(event, MessageEvent) and self._on_message is not None:
                await _maybe_await(self._on_message(event))
        except Exception as e:
            logger.error("qq_event_handler_error", post_type=event.post_type, error=str(e))

    def _report_error(self, error: Exception) -> None:
        if self._on_error is None:
            return
        try:
            self._on_error(error)
        except Exception as e:
            logger.error("qq_error_handler_failed", error=str(e))

    def _handle_close(self, code: int | None) -> None:
        if self._is_closing or self._aborted():
            self._state = MonitorState.CLOSED
            logger.info("qq_ws_closed", code=code)
            return
        if self._reconnect_handle is not None:
            return
        delay = self.reconnect_interval_s
        logger.info("qq_ws_reconnect_scheduled", code=code, delay_s=delay)
        self._state = MonitorState.RECONNECT_SCHEDULED
        self._reconnect_handle = asyncio.get_running_loop().call_later(delay, self._connect)

    def close(self) -> None:
        """Stop for good. Safe to call any number of times."""
        if self._is_closing:
            return
        self._is_closing = True
        self._state = MonitorState.CLOSED
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None
        if self._ws is not None:
            self._close_task = asyncio.ensure_future(self._ws.close())
        elif self._task is not None and not self._task.done() and self._task is not asyncio.current_task():
            # still handshaking
            self._task.cancel()
        watcher = self._abort_watcher
        if watcher is not None and not watcher.done() and watcher is not asyncio.current_task():
            watcher.cancel()
        logger.info("qq_monitor_closing", account_id=self.account_id)

    async def wait_closed(self) -> None:
        """Wait for the live connection (if any) to finish shutting down."""
        pending = [t for t in (self._task, self._close_task) if t is not None]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
