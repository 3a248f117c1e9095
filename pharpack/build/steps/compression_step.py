"""
压缩步骤模块

压缩失败不会中断编译：输出警告后保留未压缩的归档。
"""

from ...box import CompressionFailure, UnsupportedFeatureError
from ...config.schema import CompressionAlgorithm
from ...utils import bump_open_file_descriptor_limit, format_size
from ...utils.logging import info, success, warning, error, LogStage
from ..build_context import BuildContext, BuildError
from .build_step import BuildStep


class CompressionStep(BuildStep):
    """归档压缩步骤"""

    def __init__(self):
        super().__init__("compress", "压缩归档")

    def get_progress_range(self) -> tuple[int, int]:
        return (75, 85)

    def execute(self, context: BuildContext) -> None:
        """压缩归档"""
        if context.box is None:
            raise BuildError("归档尚未创建")

        algorithm = context.config.compression
        _, end = self.get_progress_range()

        if algorithm == CompressionAlgorithm.NONE:
            context.report_progress("压缩", end, "未启用压缩")
            return

        if context.dev:
            info("开发模式：跳过压缩", stage=LogStage.COMPRESS)
            context.report_progress("压缩", end, "已跳过")
            return

        info(f"压缩归档 - 算法: {algorithm.name}", stage=LogStage.COMPRESS)

        box = context.box
        restore_limit = bump_open_file_descriptor_limit(box.count())

        try:
            extension = box.compress(algorithm)
        except (UnsupportedFeatureError, CompressionFailure) as e:
            warning(f"无法压缩归档，将保留未压缩的版本: {e}", stage=LogStage.COMPRESS)
            return
        except Exception as e:
            error(f"压缩过程异常: {e}", stage=LogStage.COMPRESS)
            raise BuildError(f"压缩过程异常: {e}") from e
        finally:
            restore_limit()

        context.build_stats['compression'] = algorithm.value
        context.report_progress("压缩", end, "压缩完成")

        success("压缩完成", stage=LogStage.COMPRESS)
        info(f"  算法: {algorithm.name}")
        info(f"  归档大小: {format_size(box.phar.path.stat().st_size)}")
        if extension:
            info(f"  运行时需要 PHP 扩展: {extension}")
