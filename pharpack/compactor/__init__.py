"""压缩器（内容转换）模块"""

from .base import Compactor, FileExtensionCompactor
from .compactors import Compactors
from .factory import create_compactors
from .json_compactor import Json
from .php import Php
from .php_scoper import NamespaceScoper, NullScoper, PhpScoper, Scoper, ScopingError
from .placeholder import Placeholder
from .symbols import SymbolsRegistry

__all__ = [
    "Compactor",
    "FileExtensionCompactor",
    "Compactors",
    "create_compactors",
    "Json",
    "Php",
    "PhpScoper",
    "Scoper",
    "NamespaceScoper",
    "NullScoper",
    "ScopingError",
    "Placeholder",
    "SymbolsRegistry",
]
