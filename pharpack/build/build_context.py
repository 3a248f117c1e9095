"""
编译上下文模块

定义编译过程中各步骤共享的数据结构和异常类。
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Any, Dict, TYPE_CHECKING

from ..config.schema import PharpackConfig

if TYPE_CHECKING:
    from ..box import Box
    from .collector import CollectedFiles

# 进度回调类型
ProgressCallback = Callable[[str, int, int, str], None]


@dataclass
class BuildContext:
    """编译上下文，包含编译过程中的共享数据"""
    config: PharpackConfig
    output_path: Path
    config_path: Optional[Path] = None
    progress_callback: Optional[ProgressCallback] = None

    # 编译选项
    debug: bool = False
    dev: bool = False
    parallel: bool = True

    # 编译过程中生成的数据
    box: Optional['Box'] = None
    tmp_output_path: Optional[Path] = None
    main_script: Optional[str] = None
    check_requirements: bool = False
    files: Optional['CollectedFiles'] = None

    # 统计信息
    build_stats: Dict[str, Any] = None  # type: ignore

    def __post_init__(self):
        if self.build_stats is None:
            self.build_stats = {
                'start_time': 0,
                'end_time': 0,
                'total_files': 0,
                'total_size': 0,
                'output_size': 0,
                'compression': None,
                'signature': None,
            }

    def report_progress(self, step: str, percent: int, message: str) -> None:
        if self.progress_callback:
            self.progress_callback(step, percent, 100, message)


class BuildError(Exception):
    """编译错误"""
    pass
