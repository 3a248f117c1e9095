"""
编译器主类

负责整个编译流程的协调，使用管道模式组织编译步骤。
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, List

from ..config.schema import PharpackConfig
from .build_pipeline import BuildPipeline
from .build_context import BuildError, ProgressCallback


@dataclass
class BuildResult:
    """编译结果"""
    success: bool
    output_path: Optional[Path] = None
    output_size: Optional[int] = None
    file_count: Optional[int] = None
    build_time: Optional[float] = None
    compression: Optional[str] = None
    signature: Optional[dict] = None
    error: Optional[str] = None


class Builder:
    """PHAR 编译器

    使用管道模式协调编译步骤，提供统一的编译接口。
    """

    def __init__(self):
        self.pipeline = BuildPipeline()

    def build(
        self,
        config: PharpackConfig,
        output_path: Optional[Path] = None,
        progress_callback: Optional[ProgressCallback] = None,
        config_path: Optional[Path] = None,
        debug: bool = False,
        dev: bool = False,
        parallel: bool = True,
    ) -> BuildResult:
        """编译 PHAR

        Args:
            config: 配置对象
            output_path: 输出路径，覆盖配置中的 output
            progress_callback: 进度回调函数
            config_path: 配置文件路径
            debug: 调试模式
            dev: 开发模式（跳过压缩）
            parallel: 是否允许并行处理文件

        Returns:
            BuildResult: 编译结果
        """
        if output_path is not None:
            config.output = Path(output_path)
        output_path = config.get_output_path()

        try:
            context = self.pipeline.execute(
                config,
                output_path,
                progress_callback,
                config_path=config_path,
                debug_mode=debug,
                dev=dev,
                parallel=parallel,
            )

            build_time = context.build_stats['end_time'] - context.build_stats['start_time']

            return BuildResult(
                success=True,
                output_path=output_path,
                output_size=context.build_stats['output_size'],
                file_count=context.build_stats['total_files'],
                build_time=build_time,
                compression=context.build_stats['compression'],
                signature=context.build_stats['signature'],
            )

        except BuildError as e:
            # 编译失败，返回失败结果
            return BuildResult(
                success=False,
                error=str(e)
            )

    def get_pipeline(self) -> BuildPipeline:
        """获取编译管道，用于自定义编译流程"""
        return self.pipeline

    def validate_build_pipeline(self) -> List[str]:
        """验证编译管道的完整性

        Returns:
            List[str]: 验证错误列表，空列表表示验证通过
        """
        return self.pipeline.validate_pipeline()
