"""
并行文件处理

在进程池中对一批文件执行「路径映射 -> 压缩器链」，合并各任务产生的符号注册表。
任务函数必须是模块顶层函数，上下文对象随每个任务一起序列化传给工作进程。
"""

from concurrent.futures import ProcessPoolExecutor, wait
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Tuple

from .compactor import Compactors, SymbolsRegistry
from .map_file import MapFile
from .utils.logging import debug, LogStage
from .utils.paths import file_contents

DEFAULT_WORKER_LIMIT = 32

ProcessedFile = Tuple[str, str]


@dataclass(frozen=True)
class ProcessorContext:
    """一个进程池共享的只读输入"""
    cwd: str
    map_file: MapFile
    compactors: Compactors


def process_file(context: ProcessorContext, file: str) -> Tuple[str, str, Optional[SymbolsRegistry]]:
    """处理单个文件，返回 (归档内路径, 转换后的内容, 该任务的符号注册表)"""
    path = Path(file)
    if not path.is_absolute():
        path = Path(context.cwd) / path

    contents = file_contents(path).decode('utf-8', errors='surrogateescape')
    local = context.map_file(str(path))
    processed = context.compactors.compact(local, contents)

    return local, processed, context.compactors.get_scoper_symbols_registry()


class CompositeError(Exception):
    """并行批次中一个或多个任务失败"""

    def __init__(self, reasons: Iterable[BaseException]):
        self.reasons: List[BaseException] = list(reasons)
        messages = collect_reasons(self)
        super().__init__(
            f"{len(self.reasons)} 个文件处理失败:\n" + "\n".join(f"  - {message}" for message in messages)
        )


def collect_reasons(error: CompositeError) -> List[str]:
    """去重后的失败原因（保持首次出现的顺序）"""
    return list(dict.fromkeys(str(reason) for reason in error.reasons))


class ParallelProcessor:
    """批量并行处理文件

    Args:
        context: 进程池共享的只读输入
        max_workers: 最大工作进程数，实际数量不超过文件数
        executor_factory: 创建执行器的工厂，默认 ProcessPoolExecutor
    """

    def __init__(
        self,
        context: ProcessorContext,
        max_workers: int = DEFAULT_WORKER_LIMIT,
        executor_factory: Optional[Callable[[int], object]] = None,
    ):
        self.context = context
        self.max_workers = max_workers
        self.executor_factory = executor_factory or (lambda workers: ProcessPoolExecutor(max_workers=workers))

    def process(self, files: Iterable[str]) -> Tuple[List[ProcessedFile], SymbolsRegistry]:
        """处理全部文件

        Raises:
            CompositeError: 任意任务失败；整批结果作废
        """
        files = [str(file) for file in files]
        base_registry = self.context.compactors.get_scoper_symbols_registry()

        if not files:
            return [], SymbolsRegistry.create_from_registries([base_registry])

        workers = max(1, min(self.max_workers, len(files)))
        debug(f"使用 {workers} 个工作进程处理 {len(files)} 个文件", stage=LogStage.PARALLEL)

        with self.executor_factory(workers) as executor:
            futures = [executor.submit(process_file, self.context, file) for file in files]
            wait(futures)

        failures = [future.exception() for future in futures if future.exception() is not None]
        if failures:
            raise CompositeError(failures)

        results = [future.result() for future in futures]
        registry = SymbolsRegistry.create_from_registries(
            [base_registry] + [partial for _, _, partial in results]
        )

        return [(local, contents) for local, contents, _ in results], registry
