"""Pytest 配置和 fixtures。"""

from __future__ import annotations

import asyncio
import io
import os
import sys
import time
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).parent.parent

# 添加 src 到 Python 路径
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from smoke_run.config import Config  # noqa: E402

FAKE_CHILD = Path(__file__).parent / "fixtures" / "fake_child.py"


def fake_child_command(*args: str) -> str:
    """Shell command string running the fake child with ``args``."""
    parts = [f'"{sys.executable}"', f'"{FAKE_CHILD}"', *args]
    return " ".join(parts)


async def wait_for_output(sink: io.StringIO, text: str, timeout: float = 5.0) -> None:
    """Wait until ``text`` shows up in ``sink``."""
    deadline = time.monotonic() + timeout
    while text not in sink.getvalue():
        if time.monotonic() > deadline:
            raise AssertionError(f"{text!r} not seen in output: {sink.getvalue()!r}")
        await asyncio.sleep(0.01)


def pid_alive(pid: int) -> bool:
    """True if ``pid`` is running. Zombies count as gone."""
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True

    stat = Path(f"/proc/{pid}/stat")
    try:
        # Format: "pid (comm) state ..."; comm may contain spaces
        state = stat.read_text().rsplit(")", 1)[1].split()[0]
    except (OSError, IndexError):
        return True
    return state != "Z"


async def wait_until_gone(pid: int, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while pid_alive(pid):
        if time.monotonic() > deadline:
            return False
        await asyncio.sleep(0.02)
    return True


@pytest.fixture
def sink() -> io.StringIO:
    """Output stream capturing status lines and child output."""
    return io.StringIO()


@pytest.fixture
def plain_config() -> Config:
    """Config without color codes and with a short drain grace."""
    return Config(color=False, drain_timeout=0.5)
