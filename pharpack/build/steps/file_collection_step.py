"""
文件收集步骤模块

负责收集要打包的文件。
"""

from ...utils import format_size
from ...utils.logging import info, success, debug, error, LogStage
from ..build_context import BuildContext, BuildError
from ..collector import collect_files
from .build_step import BuildStep


class FileCollectionStep(BuildStep):
    """文件收集步骤"""

    def __init__(self):
        super().__init__("collect", "收集要打包的文件")

    def get_progress_range(self) -> tuple[int, int]:
        return (5, 15)

    def execute(self, context: BuildContext) -> None:
        """收集要打包的文件"""
        info("收集文件", stage=LogStage.COLLECT)

        try:
            collected = collect_files(context.config, context.config_path)

            if collected.autodiscovered:
                info(f"未配置输入，自动发现 {context.config.base_path} 下的文件", stage=LogStage.COLLECT)

            total_files = len(collected.files) + len(collected.binary_files)
            context.build_stats['total_files'] = total_files
            context.build_stats['total_size'] = collected.total_size
            context.files = collected

            context.report_progress("收集文件", self.get_progress_range()[1], f"找到 {total_files} 个文件")

            success("文件收集完成", stage=LogStage.COLLECT)
            info(f"  文件数量: {len(collected.files)}")
            info(f"  二进制文件数量: {len(collected.binary_files)}")
            info(f"  总大小: {format_size(collected.total_size)}")

            # 在 DEBUG 级别输出前 20 个文件用于诊断
            for idx, f in enumerate(collected.files[:20]):
                debug(f"文件[{idx}]: {f.relative_path} size={format_size(f.size)} mtime={int(f.mtime)}", stage=LogStage.COLLECT)
            if len(collected.files) > 20:
                debug(f"... 还有 {len(collected.files) - 20} 个文件未列出", stage=LogStage.COLLECT)

        except Exception as e:
            error(f"文件收集失败: {e}", stage=LogStage.COLLECT)
            raise BuildError(f"文件收集失败: {e}") from e
