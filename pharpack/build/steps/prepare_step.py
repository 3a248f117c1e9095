"""
准备步骤模块

清理上次编译的残留，创建归档并注册占位符、压缩器链和路径映射。
"""

from ... import composer
from ...box import Box
from ...compactor import create_compactors
from ...config.replacements import get_replacements
from ...map_file import MapFile
from ...utils.logging import info, debug, error, LogStage
from ...utils.paths import remove
from ..build_context import BuildContext, BuildError
from .build_step import BuildStep


class PrepareStep(BuildStep):
    """准备步骤"""

    def __init__(self):
        super().__init__("prepare", "创建归档并注册内容转换")

    def get_progress_range(self) -> tuple[int, int]:
        return (0, 5)

    def execute(self, context: BuildContext) -> None:
        config = context.config
        output_path = context.output_path
        tmp_output_path = output_path.with_name(output_path.name + '.tmp')

        try:
            for stale in (
                output_path,
                tmp_output_path,
                tmp_output_path.with_name(tmp_output_path.name + '.pubkey'),
            ):
                if stale.exists():
                    debug(f"删除旧文件: {stale}", stage=LogStage.INIT)
                    remove(stale)

            if config.dump_autoload():
                version = composer.check_version(config.composer.bin)
                debug(f"Composer 版本: {version}", stage=LogStage.COMPOSER)

            box = Box.create(
                tmp_output_path,
                alias=config.get_alias(),
                parallel_processing=context.parallel,
            )
            box.start_buffering()

            context.box = box
            context.tmp_output_path = tmp_output_path

            replacements = get_replacements(config)
            if replacements:
                info(f"注册占位符: {', '.join(replacements)}", stage=LogStage.CONFIG)
            box.register_placeholders(replacements)

            compactors = create_compactors(config)
            if len(compactors):
                info(f"注册压缩器: {', '.join(type(c).__name__ for c in compactors)}", stage=LogStage.CONFIG)
            box.register_compactors(compactors)

            map_file = MapFile.from_config(config)
            if map_file.rules:
                info(f"注册路径映射: {len(map_file.rules)} 条规则", stage=LogStage.CONFIG)
            box.register_file_mapping(map_file)

            context.report_progress("准备", self.get_progress_range()[1], f"别名: {config.get_alias()}")

        except composer.ComposerError as e:
            error(f"Composer 检查失败: {e}", stage=LogStage.COMPOSER)
            raise BuildError(f"Composer 检查失败: {e}") from e
        except Exception as e:
            error(f"准备归档失败: {e}", stage=LogStage.INIT)
            raise BuildError(f"准备归档失败: {e}") from e
