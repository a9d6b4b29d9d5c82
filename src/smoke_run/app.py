"""smoke-run 应用入口。

运行一个 shell 命令，直到其退出或收到 SIGINT/SIGTERM。
收到信号时先 dispose 进程树，再退出程序。
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
import sys
from typing import Any, TextIO

from . import __version__
from .config import Config, get_config
from .runtime.command import is_windows
from .supervisor import ShellSupervisor

__all__ = ["run_command", "main"]

logger = logging.getLogger(__name__)

EXIT_INTERRUPTED = 130  # 128 + SIGINT(2)


def _exit_code(returncode: int | None) -> int:
    """将子进程返回码映射为本进程的退出码。"""
    if returncode is None:
        return 1
    if returncode < 0:
        # 被信号 N 终止
        return 128 - returncode
    return returncode


def _install_signal_handlers(
    loop: asyncio.AbstractEventLoop,
    stop_event: asyncio.Event,
) -> dict[int, Any]:
    """将 SIGINT/SIGTERM 转发到 ``stop_event``。

    Returns:
        需要恢复的原始处理器（仅 Windows）
    """
    originals: dict[int, Any] = {}

    if not is_windows():
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop_event.set)
        logger.debug("Signal handlers installed")
    else:
        originals[signal.SIGINT] = signal.signal(
            signal.SIGINT,
            lambda sig, frame: loop.call_soon_threadsafe(stop_event.set),
        )
        logger.debug("SIGINT handler installed on Windows")

    return originals


def _remove_signal_handlers(
    loop: asyncio.AbstractEventLoop,
    originals: dict[int, Any],
) -> None:
    if not is_windows():
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.remove_signal_handler(sig)
            except Exception as e:
                logger.debug(f"Error removing signal handler {sig}: {e}")
    else:
        for sig, handler in originals.items():
            try:
                signal.signal(sig, handler)
            except Exception as e:
                logger.debug(f"Error restoring signal handler {sig}: {e}")

    logger.debug("Signal handlers removed")


async def run_command(
    command: str,
    *,
    stdout: TextIO | None = None,
    config: Config | None = None,
    stop_event: asyncio.Event | None = None,
) -> int:
    """运行 ``command``，直到其退出或收到停止请求。

    Args:
        command: shell 命令字符串
        stdout: 输出流（默认 sys.stdout）
        config: 配置（默认使用全局配置）
        stop_event: 请求 dispose 的事件；省略时自动创建并绑定到
            SIGINT/SIGTERM

    Returns:
        退出码：子进程的退出码，收到停止请求时为 130
    """
    config = config if config is not None else get_config()
    loop = asyncio.get_running_loop()

    originals: dict[int, Any] | None = None
    if stop_event is None:
        stop_event = asyncio.Event()
        originals = _install_signal_handlers(loop, stop_event)

    try:
        async with ShellSupervisor(stdout=stdout, config=config) as supervisor:
            handle = await supervisor.restart(command)

            exit_task = asyncio.create_task(handle.wait(), name="smoke-wait")
            stop_task = asyncio.create_task(stop_event.wait(), name="smoke-stop")
            done, _ = await asyncio.wait(
                {exit_task, stop_task}, return_when=asyncio.FIRST_COMPLETED
            )
            for task in (exit_task, stop_task):
                if not task.done():
                    task.cancel()
                    with contextlib.suppress(asyncio.CancelledError):
                        await task

            if exit_task in done:
                return _exit_code(handle.returncode)

            logger.info(f"Stop requested, disposing pid={handle.pid}")
            await supervisor.stop()
            return EXIT_INTERRUPTED

    finally:
        if originals is not None:
            _remove_signal_handlers(loop, originals)


def _configure_logging(config: Config) -> None:
    log_handlers: list[logging.Handler] = []
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    if config.log_debug and config.log_file:
        handler: logging.Handler = logging.FileHandler(config.log_file, encoding="utf-8")
        log_level = logging.DEBUG
    else:
        handler = logging.StreamHandler(sys.stderr)
        log_level = logging.INFO

    handler.setFormatter(formatter)
    log_handlers.append(handler)

    # 第三方库保持安静
    logging.basicConfig(level=logging.WARNING, handlers=log_handlers)
    logging.getLogger("smoke_run").setLevel(log_level)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="smoke-run",
        description="Run a shell command and tear its process tree down on exit.",
    )
    parser.add_argument("command", nargs="+", help="command string run through sh/cmd")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv: list[str] | None = None) -> None:
    """主入口点。"""
    args = _build_parser().parse_args(argv)
    config = get_config()
    _configure_logging(config)
    logger.debug(f"Starting smoke-run: {config}")

    command = " ".join(args.command)
    sys.exit(asyncio.run(run_command(command, config=config)))


if __name__ == "__main__":
    main()
