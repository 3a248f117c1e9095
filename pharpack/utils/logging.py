"""
日志工具 - 编译输出

所有阶段通过模块级的 debug/info/success/warning/error 输出，
终端输出由 Rich 渲染，可选同时追加到日志文件。
"""

import atexit
import sys
import threading
from datetime import datetime
from pathlib import Path
from typing import IO, Optional, Union

from rich.console import Console


class OutputLevel:
    """输出级别常量"""
    DEBUG = "DEBUG"
    INFO = "INFO"
    SUCCESS = "SUCCESS"
    WARNING = "WARNING"
    ERROR = "ERROR"


class LogStage:
    """日志阶段标记"""
    INIT = "INIT"
    CONFIG = "CONFIG"
    COLLECT = "COLLECT"
    COMPACT = "COMPACT"
    PARALLEL = "PARALLEL"
    BUFFER = "BUFFER"
    COMPOSER = "COMPOSER"
    STUB = "STUB"
    COMPRESS = "COMPRESS"
    SIGN = "SIGN"
    WRITE = "WRITE"
    DONE = "DONE"


# (优先级, Rich 样式)
_LEVELS = {
    OutputLevel.DEBUG: (0, "dim"),
    OutputLevel.INFO: (1, "default"),
    OutputLevel.SUCCESS: (1, "green"),
    OutputLevel.WARNING: (2, "yellow"),
    OutputLevel.ERROR: (3, "red bold"),
}


class BuildOutput:
    """编译输出

    ERROR 写到 stderr，其余写到 stdout。日志文件中的每一行带完整日期。
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._threshold = OutputLevel.INFO
        self._log_file: Optional[IO[str]] = None

    @staticmethod
    def _console(level: str) -> Console:
        # 每次按当前的 sys.stdout/sys.stderr 创建，便于被重定向捕获
        stream = sys.stderr if level == OutputLevel.ERROR else sys.stdout
        return Console(file=stream, highlight=False)

    def enabled(self, level: str) -> bool:
        return _LEVELS[level][0] >= _LEVELS[self._threshold][0]

    def emit(self, level: str, message: str, stage: Optional[str] = None) -> None:
        if not self.enabled(level):
            return

        now = datetime.now()
        tag = f" [cyan]{stage}[/cyan]" if stage else ""

        with self._lock:
            self._console(level).print(
                f"[dim]{now:%H:%M:%S}[/dim] [bold]{level}[/bold]{tag} {message}",
                style=_LEVELS[level][1],
            )
            if self._log_file is not None:
                prefix = f"[{now:%Y-%m-%d %H:%M:%S}] [{level}]"
                if stage:
                    prefix += f" [{stage}]"
                try:
                    self._log_file.write(f"{prefix} {message}\n")
                    self._log_file.flush()
                except OSError:
                    pass  # 日志文件写入失败不影响编译

    def set_level(self, level: str) -> None:
        if level in _LEVELS and level != OutputLevel.SUCCESS:
            self._threshold = level

    def open_log_file(self, file_path: Union[str, Path]) -> None:
        with self._lock:
            self.close()
            path = Path(file_path)
            path.parent.mkdir(parents=True, exist_ok=True)
            self._log_file = open(path, 'a', encoding='utf-8')

    def close(self) -> None:
        with self._lock:
            if self._log_file is not None:
                self._log_file.close()
                self._log_file = None


_output = BuildOutput()


def debug(message: str, stage: Optional[str] = None) -> None:
    _output.emit(OutputLevel.DEBUG, message, stage)


def info(message: str, stage: Optional[str] = None) -> None:
    _output.emit(OutputLevel.INFO, message, stage)


def success(message: str, stage: Optional[str] = None) -> None:
    _output.emit(OutputLevel.SUCCESS, message, stage)


def warning(message: str, stage: Optional[str] = None) -> None:
    _output.emit(OutputLevel.WARNING, message, stage)


def error(message: str, stage: Optional[str] = None) -> None:
    _output.emit(OutputLevel.ERROR, message, stage)


def set_log_level(level: str) -> None:
    """设置全局输出级别"""
    _output.set_level(level)


def set_log_file(file_path: Union[str, Path]) -> None:
    """把输出同时追加到日志文件"""
    _output.open_log_file(file_path)


def configure_logging(level: str = OutputLevel.INFO, log_file: Optional[Union[str, Path]] = None) -> None:
    set_log_level(level)
    if log_file:
        set_log_file(log_file)


atexit.register(_output.close)
