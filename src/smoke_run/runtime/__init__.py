"""Runtime module for shell process management.

This module spawns shell-wrapped commands, forwards their output and
tears their process trees down on disposal.
"""

from __future__ import annotations

from .command import CommandSpec, is_windows, resolve_os_command
from .shell import ShellHandle, run_shell

__all__ = [
    "CommandSpec",
    "ShellHandle",
    "is_windows",
    "resolve_os_command",
    "run_shell",
]
