"""
提交步骤模块

结束缓冲把暂存的文件写入归档，期间在暂存目录中重新生成 Composer 自动加载；
之后删除 Composer 文件，调试模式下把归档内容解包到 .box_dump 以便检查。
"""

from ... import composer
from ...utils.logging import info, success, error, LogStage
from ...utils.paths import dump_file, remove
from ..build_context import BuildContext, BuildError
from .build_step import BuildStep

DEBUG_DIR = '.box_dump'


class CommitStep(BuildStep):
    """提交暂存文件"""

    def __init__(self):
        super().__init__("commit", "写入归档")

    def get_progress_range(self) -> tuple[int, int]:
        return (65, 75)

    def execute(self, context: BuildContext) -> None:
        if context.box is None:
            raise BuildError("归档尚未创建")

        config = context.config
        box = context.box

        try:
            dump_autoload = None
            if config.dump_autoload():
                def dump_autoload(registry, prefix):
                    composer.dump_autoload(
                        registry,
                        prefix,
                        config.composer.exclude_dev_files,
                        composer_bin=config.composer.bin,
                    )

            info("写入归档", stage=LogStage.BUFFER)
            box.end_buffering(dump_autoload)

            if config.composer.exclude_composer_files:
                box.remove_composer_artefacts(config.get_vendor_dir())

            context.build_stats['total_files'] = box.count()

            if context.debug:
                self._dump(context)

            context.report_progress("写入归档", self.get_progress_range()[1], f"{box.count()} 个文件")
            success(f"归档已写入，共 {box.count()} 个文件", stage=LogStage.BUFFER)

        except composer.ComposerError as e:
            error(f"生成 Composer 自动加载失败: {e}", stage=LogStage.COMPOSER)
            raise BuildError(f"生成 Composer 自动加载失败: {e}") from e
        except Exception as e:
            error(f"写入归档失败: {e}", stage=LogStage.BUFFER)
            raise BuildError(f"写入归档失败: {e}") from e

    def _dump(self, context: BuildContext) -> None:
        dump_dir = context.config.base_path / DEBUG_DIR
        remove(dump_dir)

        context.box.phar.extract_to(dump_dir)
        dump_file(dump_dir / '.phar' / 'stub.php', context.box.phar.get_stub())

        info(f"调试模式：归档内容已解包到 {dump_dir}", stage=LogStage.BUFFER)
