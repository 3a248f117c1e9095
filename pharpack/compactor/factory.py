"""根据配置创建压缩器链"""

from typing import List

from ..config.schema import CompactorName, PharpackConfig
from .base import Compactor
from .compactors import Compactors
from .json_compactor import Json
from .php import Php
from .php_scoper import NamespaceScoper, PhpScoper


def create_compactor(name: CompactorName, config: PharpackConfig) -> Compactor:
    if name == CompactorName.PHP:
        return Php()
    if name == CompactorName.JSON:
        return Json()

    scoper = NamespaceScoper(
        prefix=config.get_scoper_prefix(),
        exclude_namespaces=config.scoper.exclude_namespaces,
        expose_global_classes=config.scoper.expose_global_classes,
        expose_global_functions=config.scoper.expose_global_functions,
    )
    return PhpScoper(scoper)


def create_compactors(config: PharpackConfig) -> Compactors:
    """按配置顺序创建压缩器链（占位符压缩器由 Box 负责插入）"""
    compactors: List[Compactor] = [create_compactor(name, config) for name in config.compactors]
    return Compactors(*compactors)
