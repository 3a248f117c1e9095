"""压缩器链"""

from typing import Iterator, List, Optional

from .base import Compactor
from .php_scoper import Scoper
from .symbols import SymbolsRegistry


class Compactors:
    """按顺序执行的压缩器链，前一个的输出是后一个的输入"""

    def __init__(self, *compactors: Compactor):
        self._compactors: List[Compactor] = list(compactors)
        self._scoper: Optional[Scoper] = None

        for compactor in self._compactors:
            scoper = compactor.as_scoper()
            if scoper is not None:
                self._scoper = scoper
                break

    def compact(self, file: str, contents: str) -> str:
        for compactor in self._compactors:
            if compactor.supports(file):
                contents = compactor.compact(file, contents)
        return contents

    def get_scoper(self) -> Optional[Scoper]:
        return self._scoper

    def get_scoper_symbols_registry(self) -> Optional[SymbolsRegistry]:
        return self._scoper.get_symbols_registry() if self._scoper is not None else None

    def register_symbols_registry(self, registry: SymbolsRegistry) -> None:
        if self._scoper is not None:
            self._scoper.change_symbols_registry(registry)

    def to_list(self) -> List[Compactor]:
        return list(self._compactors)

    def __iter__(self) -> Iterator[Compactor]:
        return iter(self._compactors)

    def __len__(self) -> int:
        return len(self._compactors)
