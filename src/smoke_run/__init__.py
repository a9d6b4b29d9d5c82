"""smoke-run - 带进程树终止的 shell 命令运行器。

环境变量:
    SMOKE_COLOR: 状态行颜色 (默认 true)
    SMOKE_KILL_MODE: POSIX 终止方式 group/children (默认 group)
    SMOKE_DISPOSE_TIMEOUT: dispose() 等待退出的秒数 (默认无限)
    SMOKE_DRAIN_TIMEOUT: 退出后输出排空宽限 (默认 0.5 秒)
    SMOKE_LOG_DEBUG: 调试日志写入临时文件 (默认 false)

用法:
    smoke-run "npm run build"
"""

__version__ = "0.1.0"

from .runtime import CommandSpec, ShellHandle, resolve_os_command, run_shell

__all__ = [
    "__version__",
    "CommandSpec",
    "ShellHandle",
    "resolve_os_command",
    "run_shell",
]
