"""
签名步骤模块
"""

from ...box import SigningError, UnsupportedFeatureError
from ...config.schema import SigningAlgorithm
from ...utils.logging import info, success, error, LogStage
from ..build_context import BuildContext, BuildError
from .build_step import BuildStep


class SigningStep(BuildStep):
    """归档签名步骤"""

    def __init__(self):
        super().__init__("sign", "签名归档")

    def get_progress_range(self) -> tuple[int, int]:
        return (85, 95)

    def execute(self, context: BuildContext) -> None:
        if context.box is None:
            raise BuildError("归档尚未创建")

        signing = context.config.signing
        box = context.box

        try:
            if signing.algorithm == SigningAlgorithm.OPENSSL:
                key_path = context.config.get_private_key_path()
                info(f"使用私钥签名: {key_path}", stage=LogStage.SIGN)
                box.sign_using_file(key_path, signing.key_pass)
            else:
                info(f"签名算法: {signing.algorithm.value}", stage=LogStage.SIGN)
                box.phar.set_signature_algorithm(signing.algorithm)

            signature = box.phar.get_signature()
            context.build_stats['signature'] = signature
            context.report_progress("签名", self.get_progress_range()[1], "签名完成")

            if signature is not None:
                success(f"签名完成 ({signature['hash_type']}): {signature['hash']}", stage=LogStage.SIGN)

        except (SigningError, UnsupportedFeatureError) as e:
            error(f"签名失败: {e}", stage=LogStage.SIGN)
            raise BuildError(f"签名失败: {e}") from e
        except Exception as e:
            error(f"签名过程异常: {e}", stage=LogStage.SIGN)
            raise BuildError(f"签名过程异常: {e}") from e
