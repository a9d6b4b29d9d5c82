"""Process tree termination helpers.

POSIX:
- Shells are started with start_new_session=True, so the shell is the
  leader of its own process group and every descendant that does not
  call setsid itself shares that group. kill_process_group() signals
  all of them at once.
- list_child_pids() asks `ps` for the direct children of a pid (procps
  syntax, one pid per line, no header). Used by the "children" kill mode.

Windows:
- taskkill_tree() runs `taskkill /pid <pid> /T /F`.

All calls are synchronous; they run in order before dispose() starts
waiting for exit confirmation.
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess

from ..errors import TerminationError

__all__ = [
    "is_group_leader",
    "kill_children",
    "kill_process_group",
    "list_child_pids",
    "parse_child_pids",
    "signal_pid",
    "taskkill_tree",
]

logger = logging.getLogger(__name__)


def parse_child_pids(output: str) -> list[int]:
    """Parse `ps -o pid --no-headers` output into pids.

    Lines that are not integers are skipped.
    """
    pids: list[int] = []
    for line in output.splitlines():
        line = line.strip()
        if line.isdigit():
            pids.append(int(line))
    return pids


def list_child_pids(pid: int) -> list[int]:
    """Return the direct children of ``pid``.

    `ps` exits with 1 when nothing matches; that is an empty result,
    not an error.

    Raises:
        TerminationError: `ps` is missing or failed
    """
    argv = ["ps", "-o", "pid", "--no-headers", "--ppid", str(pid)]
    try:
        result = subprocess.run(argv, capture_output=True, text=True)
    except OSError as e:
        raise TerminationError(argv, None, str(e)) from e

    if result.returncode not in (0, 1):
        raise TerminationError(argv, result.returncode, result.stderr)

    pids = parse_child_pids(result.stdout)
    logger.debug(f"Children of pid={pid}: {pids}")
    return pids


def signal_pid(pid: int, sig: int = signal.SIGTERM) -> bool:
    """Send ``sig`` to ``pid``.

    Returns:
        False if the process no longer exists, True otherwise
    """
    try:
        os.kill(pid, sig)
    except ProcessLookupError:
        logger.debug(f"pid={pid} already gone")
        return False
    logger.debug(f"Sent signal {sig} to pid={pid}")
    return True


def kill_children(pid: int, sig: int = signal.SIGTERM) -> list[int]:
    """Signal every direct child of ``pid``.

    Returns:
        The pids that were signalled
    """
    signalled = []
    for child in list_child_pids(pid):
        if signal_pid(child, sig):
            signalled.append(child)
    return signalled


def is_group_leader(pid: int) -> bool:
    """True if ``pid`` leads its own process group.

    Only a group leader's group is safe to signal as a whole; a process
    spawned without a new session shares the caller's group.
    """
    try:
        return os.getpgid(pid) == pid
    except ProcessLookupError:
        return False


def kill_process_group(pgid: int, sig: int = signal.SIGTERM) -> bool:
    """Signal process group ``pgid``.

    For a shell started with a new session the group id is the shell's
    pid, and the group outlives the shell while any member is alive.

    Returns:
        False if the group no longer exists, True otherwise
    """
    try:
        os.killpg(pgid, sig)
    except ProcessLookupError:
        logger.debug(f"Process group pgid={pgid} already gone")
        return False
    logger.debug(f"Sent signal {sig} to process group pgid={pgid}")
    return True


def taskkill_tree(pid: int) -> None:
    """Force-kill the process tree rooted at ``pid`` (Windows).

    Raises:
        TerminationError: taskkill is missing or returned non-zero
    """
    argv = ["taskkill", "/pid", str(pid), "/T", "/F"]
    try:
        result = subprocess.run(argv, capture_output=True, text=True)
    except OSError as e:
        raise TerminationError(argv, None, str(e)) from e

    if result.returncode != 0:
        raise TerminationError(argv, result.returncode, result.stdout + result.stderr)
    logger.debug(f"taskkill succeeded for pid={pid}")
