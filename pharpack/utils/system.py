"""
系统资源工具

压缩归档时每个条目可能同时占用一个文件描述符，这里在压缩前临时提高软限制。
"""

from typing import Callable

from .logging import debug, LogStage

try:
    import resource
    RESOURCE_AVAILABLE = True
except ImportError:  # Windows 没有 resource 模块
    RESOURCE_AVAILABLE = False

# 预留给解释器、日志文件等的额外描述符
_RESERVED_DESCRIPTORS = 128


def bump_open_file_descriptor_limit(file_count: int) -> Callable[[], None]:
    """按条目数量提高打开文件数的软限制

    Args:
        file_count: 归档中的条目数量

    Returns:
        Callable: 恢复原限制的函数
    """
    if not RESOURCE_AVAILABLE:
        debug("当前平台不支持调整文件描述符限制，跳过", stage=LogStage.COMPRESS)
        return lambda: None

    soft, hard = resource.getrlimit(resource.RLIMIT_NOFILE)
    required = file_count + _RESERVED_DESCRIPTORS

    if soft == resource.RLIM_INFINITY or soft >= required:
        return lambda: None

    target = required if hard == resource.RLIM_INFINITY else min(required, hard)

    try:
        resource.setrlimit(resource.RLIMIT_NOFILE, (target, hard))
    except (ValueError, OSError) as e:
        debug(f"无法提高文件描述符限制: {e}", stage=LogStage.COMPRESS)
        return lambda: None

    debug(f"文件描述符软限制: {soft} -> {target}", stage=LogStage.COMPRESS)

    def restore() -> None:
        resource.setrlimit(resource.RLIMIT_NOFILE, (soft, hard))
        debug(f"文件描述符软限制已恢复为 {soft}", stage=LogStage.COMPRESS)

    return restore
