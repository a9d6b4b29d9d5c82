"""CLI / app 测试。"""

from __future__ import annotations

import asyncio
import io

import pytest

from conftest import fake_child_command, wait_for_output
from smoke_run import __version__
from smoke_run.app import EXIT_INTERRUPTED, _exit_code, main, run_command
from smoke_run.config import Config


class TestExitCode:
    """测试子进程返回码到退出码的映射。"""

    def test_passthrough(self):
        assert _exit_code(0) == 0
        assert _exit_code(3) == 3

    def test_signal(self):
        assert _exit_code(-15) == 143
        assert _exit_code(-9) == 137

    def test_unknown(self):
        assert _exit_code(None) == 1


class TestRunCommand:
    """测试 run_command() 运行到退出或停止。"""

    @pytest.mark.asyncio
    async def test_returns_child_exit_code(self, sink: io.StringIO, plain_config: Config):
        code = await asyncio.wait_for(
            run_command("exit 3", stdout=sink, config=plain_config, stop_event=asyncio.Event()),
            timeout=10,
        )
        assert code == 3
        assert sink.getvalue().startswith("[run]\n")

    @pytest.mark.asyncio
    async def test_stop_disposes(self, sink: io.StringIO, plain_config: Config):
        stop_event = asyncio.Event()
        task = asyncio.create_task(
            run_command(
                fake_child_command("--ready", "--sleep", "100"),
                stdout=sink,
                config=plain_config,
                stop_event=stop_event,
            )
        )
        await wait_for_output(sink, "ready", timeout=10)
        stop_event.set()

        code = await asyncio.wait_for(task, timeout=10)
        assert code == EXIT_INTERRUPTED
        assert sink.getvalue().endswith("[end]\n")

    @pytest.mark.asyncio
    async def test_installs_signal_handlers(self, sink: io.StringIO, plain_config: Config):
        code = await asyncio.wait_for(
            run_command("echo hi", stdout=sink, config=plain_config), timeout=10
        )
        assert code == 0
        assert "hi" in sink.getvalue()


class TestMain:
    """测试命令行入口。"""

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["--version"])
        assert exc_info.value.code == 0
        assert __version__ in capsys.readouterr().out

    def test_missing_command(self):
        with pytest.raises(SystemExit) as exc_info:
            main([])
        assert exc_info.value.code == 2

    def test_runs_joined_command(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["exit", "4"])
        assert exc_info.value.code == 4
        assert "[run]" in capsys.readouterr().out
