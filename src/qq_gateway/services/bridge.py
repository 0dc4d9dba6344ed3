"""Lifecycle manager for the OneBot bridge process (NapCatQQ).

Lifecycle: ``uninstalled -> installed -> running -> stopped``. The manager is an
object owned by the application; nothing about the process lives in module
globals.
"""

from __future__ import annotations

import asyncio
import os
import shutil
from dataclasses import dataclass
from enum import StrEnum
from typing import Optional

from qq_gateway.config import BridgeConfig
from qq_gateway.log import get_logger

logger = get_logger(__name__)


class BridgeState(StrEnum):
    UNINSTALLED = "uninstalled"
    INSTALLED = "installed"
    RUNNING = "running"
    STOPPED = "stopped"


class BridgeNotInstalledError(RuntimeError):
    """The configured bridge command cannot be found."""


@dataclass(frozen=True, slots=True)
class BridgeStatus:
    state: BridgeState
    pid: Optional[int] = None
    returncode: Optional[int] = None


class BridgeService:
    """Starts, stops, and reports on the bridge subprocess."""

    def __init__(self, config: BridgeConfig):
        self._config = config
        self._process: asyncio.subprocess.Process | None = None
        self._stopped = False

    @property
    def service_name(self) -> str:
        return "napcat_bridge"

    def _executable(self) -> str | None:
        if not self._config.command:
            return None
        program = self._config.command[0]
        if os.path.isabs(program):
            return program if os.path.exists(program) else None
        return shutil.which(program)

    @property
    def state(self) -> BridgeState:
        if self._process is not None and self._process.returncode is None:
            return BridgeState.RUNNING
        if self._process is not None or self._stopped:
            return BridgeState.STOPPED
        if self._executable() is None:
            return BridgeState.UNINSTALLED
        return BridgeState.INSTALLED

    def status(self) -> BridgeStatus:
        process = self._process
        return BridgeStatus(
            state=self.state,
            pid=process.pid if process else None,
            returncode=process.returncode if process else None,
        )

    async def start(self) -> None:
        if self.state is BridgeState.RUNNING:
            logger.info("bridge_already_running", pid=self._process.pid if self._process else None)
            return

        executable = self._executable()
        if executable is None:
            raise BridgeNotInstalledError(
                f"Bridge command not found: {self._config.command[:1] or '(not configured)'}"
            )

        env = {**os.environ, **self._config.env}
        self._process = await asyncio.create_subprocess_exec(
            executable,
            *self._config.command[1:],
            cwd=self._config.cwd,
            env=env,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
        )
        self._stopped = False
        logger.info("bridge_started", pid=self._process.pid, command=executable)

    async def stop(self) -> None:
        process = self._process
        self._stopped = True
        if process is None or process.returncode is not None:
            return

        process.terminate()
        try:
            await asyncio.wait_for(process.wait(), timeout=self._config.stop_timeout_s)
        except asyncio.TimeoutError:
            logger.warning("bridge_kill", pid=process.pid, timeout_s=self._config.stop_timeout_s)
            process.kill()
            await process.wait()
        logger.info("bridge_stopped", pid=process.pid, returncode=process.returncode)

    async def health_check(self) -> bool:
        return self.state is BridgeState.RUNNING
