"""
发布步骤模块

把临时归档（及其公钥）重命名为最终输出，并按配置设置文件权限。
"""

import os

from ...utils import format_size
from ...utils.logging import info, error, LogStage
from ..build_context import BuildContext, BuildError
from .build_step import BuildStep


class PublishStep(BuildStep):
    """发布步骤"""

    def __init__(self):
        super().__init__("publish", "输出归档")

    def get_progress_range(self) -> tuple[int, int]:
        return (95, 100)

    def execute(self, context: BuildContext) -> None:
        if context.tmp_output_path is None:
            raise BuildError("临时归档不存在")

        output_path = context.output_path
        tmp_pubkey = context.tmp_output_path.with_name(context.tmp_output_path.name + '.pubkey')

        try:
            os.replace(context.tmp_output_path, output_path)

            if tmp_pubkey.is_file():
                pubkey = output_path.with_name(output_path.name + '.pubkey')
                os.replace(tmp_pubkey, pubkey)
                info(f"公钥: {pubkey}", stage=LogStage.WRITE)

            mode = context.config.get_file_mode()
            if mode is not None:
                os.chmod(output_path, mode)
                info(f"文件权限: {oct(mode)}", stage=LogStage.WRITE)

            output_size = output_path.stat().st_size
            context.build_stats['output_size'] = output_size

            context.report_progress("输出", self.get_progress_range()[1], f"大小: {format_size(output_size)}")

        except OSError as e:
            error(f"输出归档失败: {e}", stage=LogStage.WRITE)
            raise BuildError(f"输出归档失败: {e}") from e
