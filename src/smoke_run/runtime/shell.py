"""Shell process handle with tree termination and an exit barrier.

smoke-run runtime module v0.1.0

run_shell() spawns a command through the platform shell and returns a
ShellHandle immediately. The handle:
- Prints a [run] status line, forwards stdout/stderr text to the output
  stream, and prints [end] once the process has exited
- dispose() tears the process tree down and waits until the exit has
  been observed, so a caller can start a replacement without overlap

Key design points:
- POSIX: start_new_session=True, the shell leads its own process group
- Windows: CREATE_NEW_PROCESS_GROUP, tree kill through taskkill
- Process exit is taken from the protocol's process_exited() callback,
  not from Process.wait(), which also waits for every pipe to close
- The exit barrier is an asyncio.Event set by the lifecycle task
"""

from __future__ import annotations

import asyncio
import codecs
import logging
import subprocess
import sys
from collections.abc import Mapping
from pathlib import Path
from typing import Any, TextIO

import anyio

from ..config import Config, KillMode, get_config
from ..errors import DisposeTimeoutError
from .command import is_windows, resolve_os_command
from .process_tree import (
    is_group_leader,
    kill_children,
    kill_process_group,
    taskkill_tree,
)

__all__ = [
    "ShellHandle",
    "run_shell",
]

logger = logging.getLogger(__name__)

IS_WINDOWS = is_windows()

CHUNK_SIZE = 4096
STREAM_LIMIT = 2**16

GRAY = "\x1b[90m"
RESET = "\x1b[0m"


class ShellProtocol(asyncio.subprocess.SubprocessStreamProtocol):
    """Stream protocol that reports the OS exit as soon as it happens.

    exit_future resolves with the return code from process_exited(),
    independent of whether the output pipes have been closed yet.
    """

    def __init__(self, limit: int, loop: asyncio.AbstractEventLoop) -> None:
        super().__init__(limit=limit, loop=loop)
        self.exit_future: asyncio.Future[int] = loop.create_future()

    def process_exited(self) -> None:
        super().process_exited()
        if not self.exit_future.done():
            self.exit_future.set_result(self._transport.get_returncode())


class ShellHandle:
    """Disposable handle owning one shell process.

    The handle starts forwarding output and tracking the process as soon
    as it is created, so it must be constructed inside a running event
    loop.

    Example:
        handle = await run_shell("npm run build")
        ...
        await handle.dispose()  # process tree is gone when this returns

    Attributes:
        disposed: dispose() has started teardown (never reset)
        exited: the process exit has been observed
        returncode: exit code once exited, else None
    """

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        *,
        stdout: TextIO | None = None,
        config: Config | None = None,
        exit_future: asyncio.Future[int] | None = None,
        own_group: bool = False,
    ) -> None:
        """
        Args:
            process: The spawned shell
            stdout: Output stream (defaults to sys.stdout)
            config: Configuration (defaults to the global config)
            exit_future: Resolves with the return code when the OS reports
                the exit; without it Process.wait() is used
            own_group: The shell was started as leader of a new process
                group, so the group can be signalled after the shell is gone
        """
        self._process = process
        self._stdout = stdout if stdout is not None else sys.stdout
        self._config = config if config is not None else get_config()
        self._exit_future = exit_future
        self._own_group = own_group
        self._disposed = False
        self._exited = False
        self._detached = False
        self._returncode: int | None = None
        self._exit_event = asyncio.Event()

        self._on_start()

        self._readers: list[asyncio.Task[None]] = [
            asyncio.create_task(self._forward(stream), name=f"smoke-{name}-{process.pid}")
            for name, stream in (("stdout", process.stdout), ("stderr", process.stderr))
            if stream is not None
        ]
        self._lifecycle_task = asyncio.create_task(
            self._watch_exit(), name=f"smoke-exit-{process.pid}"
        )

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def exited(self) -> bool:
        return self._exited

    @property
    def returncode(self) -> int | None:
        return self._returncode

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def _print_signal(self, message: str) -> None:
        if self._config.color:
            out = f"{GRAY}[{message}]{RESET}\n"
        else:
            out = f"[{message}]\n"
        self._write(out)

    def _write(self, text: str) -> None:
        self._stdout.write(text)
        self._stdout.flush()

    def _on_start(self) -> None:
        self._print_signal("run")

    def _on_data(self, text: str) -> None:
        if not self._detached:
            self._write(text)

    async def _forward(self, stream: asyncio.StreamReader) -> None:
        """Decode one output stream as UTF-8 and forward it.

        Multi-byte characters split across reads are held by the
        incremental decoder until complete. After dispose() detaches the
        handle the stream is still drained (and discarded) so the pipe
        reaches EOF.
        """
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            chunk = await stream.read(CHUNK_SIZE)
            if not chunk:
                break
            text = decoder.decode(chunk)
            if text:
                self._on_data(text)
        tail = decoder.decode(b"", final=True)
        if tail:
            self._on_data(tail)

    def _readers_done(self) -> bool:
        return all(task.done() for task in self._readers)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def _wait_os_exit(self) -> int:
        if self._exit_future is not None:
            return await self._exit_future
        return await self._process.wait()

    async def _watch_exit(self) -> None:
        """Wait for the process to exit, let output drain, publish exit."""
        returncode = await self._wait_os_exit()
        logger.debug(f"Shell exited pid={self.pid} returncode={returncode}")

        # A backgrounded grandchild may hold the pipes open after the
        # shell is gone; bound the drain so [end] is not held back by it.
        # Readers keep running and forward whatever arrives later.
        pending = [task for task in self._readers if not task.done()]
        if pending:
            _, pending = await asyncio.wait(
                pending, timeout=self._config.drain_timeout
            )
            if pending:
                logger.debug(
                    f"Output still open after exit pid={self.pid}, "
                    f"publishing exit after {self._config.drain_timeout}s drain"
                )

        self._on_exit(returncode)

    def _on_exit(self, returncode: int) -> None:
        self._returncode = returncode
        self._exited = True
        self._print_signal("end")
        self._exit_event.set()

    async def wait(self) -> int | None:
        """Wait until the process exit has been observed.

        Returns:
            The process exit code
        """
        await self._exit_event.wait()
        return self._returncode

    async def _wait_for_exit(self) -> None:
        timeout = self._config.dispose_timeout
        if timeout is None:
            await self._exit_event.wait()
            return

        try:
            with anyio.fail_after(timeout):
                await self._exit_event.wait()
        except TimeoutError:
            raise DisposeTimeoutError(self.pid, timeout) from None

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def _detach_streams(self) -> None:
        """Stop forwarding output and close the child's stdin."""
        self._detached = True
        if self._process.stdin is not None:
            self._process.stdin.close()

    def _kill_tree(self) -> None:
        pid = self.pid
        logger.debug(f"Killing process tree pid={pid} mode={self._config.kill_mode.value}")

        if IS_WINDOWS:
            taskkill_tree(pid)
            return

        if self._config.kill_mode is KillMode.GROUP and (
            self._own_group or is_group_leader(pid)
        ):
            kill_process_group(pid)
            return

        kill_children(pid)
        try:
            self._process.terminate()
        except ProcessLookupError:
            logger.debug(f"Shell already exited pid={pid}")

    def _kill_leftover_group(self) -> None:
        """Signal what is left of the shell's group after the shell exited.

        Background children of a finished shell are reparented, so they
        can no longer be found by parent pid; the group id still reaches
        them.
        """
        logger.debug(f"Shell exited with output still open, killing group pid={self.pid}")
        kill_process_group(self.pid)

    async def dispose(self) -> None:
        """Terminate the process tree and wait for exit confirmation.

        A no-op when already disposed or already exited. Teardown runs
        synchronously before the wait begins.

        Raises:
            TerminationError: taskkill or ps failed
            DisposeTimeoutError: exit not confirmed within dispose_timeout
        """
        if self._exited or self._disposed:
            return

        if self._process.returncode is not None:
            # The shell is gone and the lifecycle task is draining output.
            # Anything still holding the pipes lives on in the shell's group.
            if not self._readers_done() and self._own_group and not IS_WINDOWS:
                self._disposed = True
                self._detach_streams()
                self._kill_leftover_group()
            await self._wait_for_exit()
            return

        self._disposed = True
        self._detach_streams()
        self._kill_tree()
        await self._wait_for_exit()


def _build_subprocess_kwargs(
    cwd: Path | str | None,
    env: Mapping[str, str] | None,
) -> dict[str, Any]:
    """Build platform-specific subprocess kwargs."""
    kwargs: dict[str, Any] = {}

    if cwd is not None:
        kwargs["cwd"] = cwd
    if env is not None:
        kwargs["env"] = dict(env)

    if IS_WINDOWS:
        kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
    else:
        kwargs["start_new_session"] = True

    return kwargs


async def run_shell(
    command: str,
    *,
    stdout: TextIO | None = None,
    config: Config | None = None,
    cwd: Path | str | None = None,
    env: Mapping[str, str] | None = None,
) -> ShellHandle:
    """Run ``command`` through the platform shell.

    Args:
        command: Command string, passed to the shell untouched
        stdout: Stream receiving status lines and process output
            (defaults to sys.stdout)
        config: Configuration (defaults to the global config)
        cwd: Working directory for the shell
        env: Environment variables (None = inherit parent)

    Returns:
        A handle that is already streaming output

    Raises:
        OSError: the shell could not be started
    """
    spec = resolve_os_command(command)
    loop = asyncio.get_running_loop()
    transport, protocol = await loop.subprocess_exec(
        lambda: ShellProtocol(limit=STREAM_LIMIT, loop=loop),
        *spec.argv,
        stdin=asyncio.subprocess.PIPE,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        **_build_subprocess_kwargs(cwd, env),
    )
    process = asyncio.subprocess.Process(transport, protocol, loop)
    logger.debug(f"Started shell pid={process.pid} argv={spec.argv}")
    return ShellHandle(
        process,
        stdout=stdout,
        config=config,
        exit_future=protocol.exit_future,
        own_group=not IS_WINDOWS,
    )
