"""
stub 与元数据步骤模块
"""

from ...stub import generate_stub
from ...utils.logging import info, debug, error, LogStage
from ..build_context import BuildContext, BuildError
from .build_step import BuildStep


class StubStep(BuildStep):
    """设置 stub 和元数据"""

    def __init__(self):
        super().__init__("stub", "设置 stub 和元数据")

    def get_progress_range(self) -> tuple[int, int]:
        return (60, 65)

    def execute(self, context: BuildContext) -> None:
        if context.box is None:
            raise BuildError("归档尚未创建")

        config = context.config
        box = context.box

        try:
            stub_path = config.get_stub_path()

            if stub_path is not None:
                info(f"使用 stub 文件: {stub_path}", stage=LogStage.STUB)
                box.register_stub(stub_path)
            elif config.stub.generate:
                info("生成 stub", stage=LogStage.STUB)
                stub = generate_stub(
                    alias=config.get_alias(),
                    banner=config.get_stub_banner_contents(),
                    index=context.main_script,
                    intercept=config.stub.intercept,
                    shebang=config.stub.shebang,
                    check_requirements=context.check_requirements,
                )
                debug(stub, stage=LogStage.STUB)
                box.phar.set_stub(stub)
            else:
                info("使用默认 stub", stage=LogStage.STUB)
                box.phar.set_default_stub(context.main_script)

            if config.metadata is not None:
                info("设置元数据", stage=LogStage.STUB)
                box.phar.set_metadata(config.metadata)

            context.report_progress("stub", self.get_progress_range()[1], "stub 已设置")

        except Exception as e:
            error(f"设置 stub 失败: {e}", stage=LogStage.STUB)
            raise BuildError(f"设置 stub 失败: {e}") from e
