"""
压缩器基类

压缩器（compactor）是对打包文件内容的转换：去注释、重写命名空间、替换占位符等。
"""

from abc import ABC, abstractmethod
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Iterable, List, Optional

if TYPE_CHECKING:
    from .php_scoper import Scoper
    from .placeholder import Placeholder


class Compactor(ABC):
    """压缩器接口"""

    @abstractmethod
    def compact(self, file: str, contents: str) -> str:
        """转换文件内容

        Args:
            file: 归档内路径
            contents: 原始内容
        """
        pass

    def supports(self, file: str) -> bool:
        return True

    def as_scoper(self) -> Optional['Scoper']:
        """带符号前缀能力的压缩器返回其 Scoper"""
        return None

    def as_placeholder(self) -> Optional['Placeholder']:
        """占位符压缩器返回自身"""
        return None


class FileExtensionCompactor(Compactor):
    """只处理特定扩展名文件的压缩器，其余文件原样返回"""

    def __init__(self, extensions: Iterable[str]):
        self.extensions: List[str] = [ext.lstrip('.') for ext in extensions]

    def compact(self, file: str, contents: str) -> str:
        if not self.supports(file):
            return contents
        return self.compact_content(contents)

    def supports(self, file: str) -> bool:
        return PurePosixPath(file.replace('\\', '/')).suffix.lstrip('.') in self.extensions

    @abstractmethod
    def compact_content(self, contents: str) -> str:
        pass
