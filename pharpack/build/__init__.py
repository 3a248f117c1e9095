"""编译服务模块

提供 PHAR 编译流程的核心功能。
"""

from .builder import Builder, BuildResult
from .build_context import BuildContext, BuildError
from .build_pipeline import BuildPipeline
from .collector import CollectedFiles, FileCollector, FileInfo, collect_files

__all__ = [
    # 主编译器
    "Builder",
    "BuildResult",
    "BuildContext",
    "BuildError",
    "BuildPipeline",

    # 文件收集
    "CollectedFiles",
    "FileCollector",
    "FileInfo",
    "collect_files",
]
