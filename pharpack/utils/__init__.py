"""通用工具模块"""

from .logging import (
    configure_logging,
    set_log_file,
    set_log_level,
    LogStage,
    OutputLevel,
)

from .paths import (
    ensure_directory,
    make_tmp_dir,
    remove,
    file_contents,
    dump_file,
    normalize_path,
    make_path_relative,
    safe_path_join,
    format_size,
    format_time,
)

from .system import bump_open_file_descriptor_limit

__all__ = [
    # 日志相关
    "configure_logging",
    "set_log_file",
    "set_log_level",
    "LogStage",
    "OutputLevel",

    # 路径相关
    "ensure_directory",
    "make_tmp_dir",
    "remove",
    "file_contents",
    "dump_file",
    "normalize_path",
    "make_path_relative",
    "safe_path_join",
    "format_size",
    "format_time",

    # 系统资源
    "bump_open_file_descriptor_limit",
]
