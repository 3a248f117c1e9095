"""
添加文件步骤模块

依次添加入口脚本、运行环境检查器、二进制文件和普通文件。
"""

from ...parallel import CompositeError, collect_reasons
from ...requirements import RequirementsDumper
from ...utils.logging import info, success, debug, error, LogStage
from ..build_context import BuildContext, BuildError
from .build_step import BuildStep

REQUIREMENTS_DIR = '.box'


class AddFilesStep(BuildStep):
    """添加文件步骤"""

    def __init__(self):
        super().__init__("add_files", "添加文件到归档")

    def get_progress_range(self) -> tuple[int, int]:
        return (15, 60)

    def execute(self, context: BuildContext) -> None:
        if context.box is None or context.files is None:
            raise BuildError("归档尚未创建或文件尚未收集")

        box = context.box
        config = context.config
        start, end = self.get_progress_range()

        try:
            main_script = config.get_main_script_path()
            if main_script is not None:
                local = box.add_file(main_script, config.get_main_script_contents())
                context.main_script = local
                info(f"添加入口脚本: {local}", stage=LogStage.COMPACT)
            else:
                debug("未配置入口脚本", stage=LogStage.COMPACT)

            composer_json = config.get_decoded_composer_json()
            context.check_requirements = config.check_requirements and composer_json is not None

            if context.check_requirements:
                info("添加运行环境检查器", stage=LogStage.COMPACT)
                for name, contents in RequirementsDumper.dump(
                    composer_json,
                    config.get_decoded_composer_lock(),
                    config.compression,
                ):
                    box.add_file(f'{REQUIREMENTS_DIR}/{name}', contents, binary=True)

            binary_files = [f.path for f in context.files.binary_files]
            if binary_files:
                info(f"添加 {len(binary_files)} 个二进制文件", stage=LogStage.COMPACT)
                box.add_files(binary_files, binary=True)

            context.report_progress("添加文件", start + (end - start) // 4, "处理文件...")

            files = [f.path for f in context.files.files]
            if files:
                mode = "并行" if box.parallel_processing and box.get_scoper().get_prefix() else "顺序"
                info(f"添加 {len(files)} 个文件（{mode}处理）", stage=LogStage.COMPACT)
                box.add_files(files, binary=False)

            context.report_progress("添加文件", end, f"已暂存 {len(box.get_buffered_files())} 个文件")
            success("文件添加完成", stage=LogStage.COMPACT)

        except CompositeError as e:
            reasons = collect_reasons(e)
            for reason in reasons:
                error(reason, stage=LogStage.PARALLEL)
            raise BuildError(
                "并行处理文件时出错，可以使用 --no-parallel 重新编译以获得更详细的信息:\n"
                + "\n".join(f"  - {reason}" for reason in reasons)
            ) from e
        except Exception as e:
            error(f"添加文件失败: {e}", stage=LogStage.COMPACT)
            raise BuildError(f"添加文件失败: {e}") from e
