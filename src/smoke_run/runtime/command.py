"""Shell command resolution.

Maps the host platform to the shell used to run a command string:
``cmd /c <command>`` on Windows, ``sh -c <command>`` everywhere else.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass

__all__ = [
    "CommandSpec",
    "is_windows",
    "resolve_os_command",
]


@dataclass(frozen=True)
class CommandSpec:
    """Shell invocation for a command string.

    Attributes:
        program: Shell executable ("sh" or "cmd")
        args: Arguments passed to the shell, ending with the command string
    """

    program: str
    args: tuple[str, ...]

    @property
    def argv(self) -> list[str]:
        return [self.program, *self.args]


def is_windows(platform: str | None = None) -> bool:
    """True for Windows-family platform identifiers (``win32`` etc.)."""
    if platform is None:
        platform = sys.platform
    return platform.startswith("win")


def resolve_os_command(command: str, platform: str | None = None) -> CommandSpec:
    """Resolve the shell invocation for ``command``.

    Args:
        command: Opaque command string, passed to the shell untouched
        platform: Platform identifier, defaults to ``sys.platform``

    Returns:
        ``CommandSpec("cmd", ("/c", command))`` on Windows,
        ``CommandSpec("sh", ("-c", command))`` otherwise
    """
    if is_windows(platform):
        return CommandSpec("cmd", ("/c", command))
    return CommandSpec("sh", ("-c", command))
