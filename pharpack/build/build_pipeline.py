"""
编译管道模块

使用管道模式协调编译步骤的执行。
"""

import time
from pathlib import Path
from typing import List, Optional

from ..config.schema import PharpackConfig
from ..utils import format_size, format_time
from ..utils.logging import info, success, error, debug, LogStage
from ..utils.paths import remove
from .build_context import BuildContext, BuildError, ProgressCallback
from .steps.build_step import BuildStep
from .steps.prepare_step import PrepareStep
from .steps.file_collection_step import FileCollectionStep
from .steps.add_files_step import AddFilesStep
from .steps.stub_step import StubStep
from .steps.commit_step import CommitStep
from .steps.compression_step import CompressionStep
from .steps.signing_step import SigningStep
from .steps.publish_step import PublishStep


class BuildPipeline:
    """编译管道，负责协调编译步骤的执行"""

    def __init__(self):
        self._steps: List[BuildStep] = []

        # 初始化默认编译步骤
        self._init_default_steps()

    def _init_default_steps(self):
        """初始化默认的编译步骤"""
        self._steps = [
            PrepareStep(),
            FileCollectionStep(),
            AddFilesStep(),
            StubStep(),
            CommitStep(),
            CompressionStep(),
            SigningStep(),
            PublishStep(),
        ]

    def add_step(self, step: BuildStep, position: Optional[int] = None):
        """添加编译步骤"""
        if position is None:
            self._steps.append(step)
        else:
            self._steps.insert(position, step)

    def remove_step(self, step_name: str):
        """移除编译步骤"""
        self._steps = [step for step in self._steps if step.name != step_name]

    def get_steps(self) -> List[BuildStep]:
        """获取所有编译步骤"""
        return self._steps.copy()

    def execute(
        self,
        config: PharpackConfig,
        output_path: Path,
        progress_callback: Optional[ProgressCallback] = None,
        config_path: Optional[Path] = None,
        debug_mode: bool = False,
        dev: bool = False,
        parallel: bool = True,
    ) -> BuildContext:
        """执行编译管道

        Args:
            config: 配置对象
            output_path: 输出归档路径
            progress_callback: 进度回调函数
            config_path: 配置文件路径（不会被打包）
            debug_mode: 调试模式，把归档内容解包到 .box_dump
            dev: 开发模式，跳过压缩
            parallel: 是否允许并行处理文件

        Returns:
            BuildContext: 编译上下文，包含所有编译结果

        Raises:
            BuildError: 编译失败
        """
        context = BuildContext(
            config=config,
            output_path=output_path,
            config_path=config_path,
            progress_callback=progress_callback,
            debug=debug_mode,
            dev=dev,
            parallel=parallel and config.parallel,
        )

        context.build_stats['start_time'] = time.time()

        try:
            info(f"开始编译 PHAR: {output_path}", stage=LogStage.INIT)
            debug(
                f"编译配置: base_path={config.base_path} compression={config.compression.value} "
                f"signing={config.signing.algorithm.value} parallel={context.parallel} inputs={len(config.inputs)}",
                stage=LogStage.INIT,
            )

            # 依次执行每个编译步骤
            for step in self._steps:
                info(f"执行步骤: {step.description}", stage=LogStage.INIT)
                step.execute(context)

            context.build_stats['end_time'] = time.time()
            build_time = context.build_stats['end_time'] - context.build_stats['start_time']

            success(f"PHAR 编译成功: {output_path}", stage=LogStage.DONE)
            info(f"编译时间: {format_time(build_time)}")
            info(f"文件数量: {context.build_stats['total_files']}")
            info(f"原始大小: {format_size(context.build_stats['total_size'])}")
            info(f"最终大小: {format_size(context.build_stats['output_size'])}")

            return context

        except Exception as e:
            context.build_stats['end_time'] = time.time()

            # 丢弃未完成的临时归档
            if context.tmp_output_path is not None:
                remove(context.tmp_output_path)
                remove(context.tmp_output_path.with_name(context.tmp_output_path.name + '.pubkey'))

            error_msg = str(e)
            error(f"编译失败: {error_msg}", stage=LogStage.DONE)

            if isinstance(e, BuildError):
                raise

            # 重新抛出异常，让调用者处理
            raise BuildError(f"编译失败: {error_msg}") from e

    def validate_pipeline(self) -> List[str]:
        """验证编译管道的完整性

        Returns:
            List[str]: 验证错误列表，空列表表示验证通过
        """
        errors = []

        if not self._steps:
            errors.append("编译管道中没有步骤")
            return errors

        # 检查步骤的进度范围是否连续
        prev_end = 0
        for step in self._steps:
            start, end = step.get_progress_range()
            if start != prev_end:
                errors.append(f"步骤 '{step.name}' 的进度范围不连续: 期望起始 {prev_end}%, 实际 {start}%")
            if start >= end:
                errors.append(f"步骤 '{step.name}' 的进度范围无效: {start}% - {end}%")
            prev_end = end

        if prev_end != 100:
            errors.append(f"编译管道的总进度范围不是100%: {prev_end}%")

        return errors
