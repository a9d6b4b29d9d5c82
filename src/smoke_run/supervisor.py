"""顺序执行的 shell 监管器。

同一时间最多保留一个存活的 ShellHandle。restart() 先 dispose 当前进程
并等待其退出，再启动新进程，保证两次运行不会重叠。
"""

from __future__ import annotations

import asyncio
import logging
from typing import TextIO

from .config import Config, get_config
from .runtime import ShellHandle, run_shell

__all__ = ["ShellSupervisor"]

logger = logging.getLogger(__name__)


class ShellSupervisor:
    """一次只运行一个 shell 命令。

    Example:
        ```python
        async with ShellSupervisor() as supervisor:
            await supervisor.restart("pytest -x")
            ...  # 文件发生变化
            await supervisor.restart("pytest -x")
        ```
    """

    def __init__(
        self,
        stdout: TextIO | None = None,
        config: Config | None = None,
    ) -> None:
        self._stdout = stdout
        self._config = config if config is not None else get_config()
        self._current: ShellHandle | None = None
        self._lock = asyncio.Lock()

    @property
    def current(self) -> ShellHandle | None:
        """最近启动的 handle，没有则为 None。"""
        return self._current

    async def restart(self, command: str) -> ShellHandle:
        """dispose 当前进程，然后启动 ``command``。"""
        async with self._lock:
            await self._dispose_current()
            self._current = await run_shell(
                command, stdout=self._stdout, config=self._config
            )
            logger.debug(f"Supervisor started pid={self._current.pid}")
            return self._current

    async def stop(self) -> None:
        """dispose 当前进程（如果有）。"""
        async with self._lock:
            await self._dispose_current()

    async def _dispose_current(self) -> None:
        if self._current is not None:
            logger.debug(f"Supervisor disposing pid={self._current.pid}")
            await self._current.dispose()
            self._current = None

    async def __aenter__(self) -> ShellSupervisor:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.stop()
