"""smoke-run 环境变量配置管理。

环境变量:
    SMOKE_COLOR: [run]/[end] 状态行是否带颜色
        - true/1/yes/on = 开启 (默认)
        - false/0/no = 纯文本

    SMOKE_KILL_MODE: POSIX 下进程树的终止方式
        - group = 向整个进程组发送 SIGTERM (默认)
        - children = 用 `ps` 列出 shell 的直接子进程，
          逐个发送 SIGTERM，再终止 shell 本身

    SMOKE_DISPOSE_TIMEOUT: dispose() 等待退出确认的秒数
        - 未设置/空/无效/<= 0 = 无限等待 (默认)

    SMOKE_DRAIN_TIMEOUT: 进程退出后等待输出排空的秒数
        - 默认 0.5，限制在 0-10 之间

    SMOKE_LOG_DEBUG: 日志调试模式
        - true/1/yes = 开启 (日志输出到临时文件)
        - false/0/no = 关闭 (默认，日志输出到 stderr)
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path

__all__ = ["Config", "KillMode", "load_config", "get_config", "reload_config"]


class KillMode(Enum):
    """POSIX 进程树终止策略。

    - GROUP: 向子进程所在的进程组发信号
    - CHILDREN: 用 `ps` 查找 shell 的直接子进程并逐个发信号
    """

    GROUP = "group"
    CHILDREN = "children"

    @classmethod
    def from_string(cls, value: str) -> "KillMode":
        """从字符串解析模式。

        Args:
            value: 模式字符串 (group/children)

        Returns:
            对应的 KillMode 枚举值，无效值返回 GROUP
        """
        value = value.lower().strip()
        for mode in cls:
            if mode.value == value:
                return mode
        return cls.GROUP


DEFAULT_DRAIN_TIMEOUT = 0.5


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """解析布尔值环境变量。"""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_dispose_timeout(value: str | None) -> float | None:
    """解析 SMOKE_DISPOSE_TIMEOUT，None 表示无限等待。"""
    if not value:
        return None
    try:
        timeout = float(value)
    except ValueError:
        return None
    return timeout if timeout > 0 else None


def _parse_drain_timeout(value: str | None) -> float:
    """解析 SMOKE_DRAIN_TIMEOUT。"""
    if not value:
        return DEFAULT_DRAIN_TIMEOUT
    try:
        timeout = float(value)
        return max(0.0, min(timeout, 10.0))
    except ValueError:
        return DEFAULT_DRAIN_TIMEOUT


def _generate_log_file_path() -> str:
    """生成带时间戳的日志文件路径（位于系统临时目录）。"""
    log_dir = Path(tempfile.gettempdir()) / "smoke-run"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"smoke_debug_{timestamp}.log"

    return str(log_file.resolve())


@dataclass
class Config:
    """smoke-run 配置。

    Attributes:
        color: 状态行是否输出 ANSI 颜色
        kill_mode: POSIX 进程树终止策略
        dispose_timeout: dispose() 等待退出的最长秒数（None = 无限等待）
        drain_timeout: 进程退出后输出排空的宽限时间
        log_debug: 是否将调试日志写入临时文件
        log_file: 日志文件路径（log_debug 开启时设置）
    """

    color: bool = True
    kill_mode: KillMode = KillMode.GROUP
    dispose_timeout: float | None = None
    drain_timeout: float = DEFAULT_DRAIN_TIMEOUT
    log_debug: bool = False
    log_file: str | None = None

    def __repr__(self) -> str:
        return (
            f"Config(color={self.color}, "
            f"kill_mode={self.kill_mode.value}, "
            f"dispose_timeout={self.dispose_timeout}, "
            f"drain_timeout={self.drain_timeout}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file})"
        )


def load_config() -> Config:
    """从环境变量加载配置。"""
    log_debug = _parse_bool(os.environ.get("SMOKE_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    return Config(
        color=_parse_bool(os.environ.get("SMOKE_COLOR"), default=True),
        kill_mode=KillMode.from_string(os.environ.get("SMOKE_KILL_MODE", "")),
        dispose_timeout=_parse_dispose_timeout(
            os.environ.get("SMOKE_DISPOSE_TIMEOUT")
        ),
        drain_timeout=_parse_drain_timeout(os.environ.get("SMOKE_DRAIN_TIMEOUT")),
        log_debug=log_debug,
        log_file=log_file,
    )


# 全局配置实例（延迟加载）
_config: Config | None = None


def get_config() -> Config:
    """获取全局配置实例。"""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """重新加载配置（用于测试）。"""
    global _config
    _config = load_config()
    return _config
