"""smoke-run 异常类。

smoke-run v0.1.0
"""

from __future__ import annotations

__all__ = [
    "SmokeRunError",
    "TerminationError",
    "DisposeTimeoutError",
]


class SmokeRunError(Exception):
    """smoke-run 基础异常。"""
    pass


class TerminationError(SmokeRunError):
    """同步终止命令（taskkill / ps）执行失败。

    Attributes:
        command: 失败命令的 argv
        returncode: 退出码，命令无法启动时为 None
        output: 命令的 stdout/stderr 合并输出
    """

    def __init__(
        self,
        command: list[str],
        returncode: int | None,
        output: str = "",
    ) -> None:
        self.command = command
        self.returncode = returncode
        self.output = output
        detail = f": {output.strip()}" if output.strip() else ""
        super().__init__(
            f"{' '.join(command)} failed (returncode={returncode}){detail}"
        )


class DisposeTimeoutError(SmokeRunError):
    """进程未在 dispose 超时内确认退出。

    Attributes:
        pid: shell 的进程 id
        timeout: 已超出的超时时间（秒）
    """

    def __init__(self, pid: int, timeout: float) -> None:
        self.pid = pid
        self.timeout = timeout
        super().__init__(f"process pid={pid} did not exit within {timeout}s")
