"""
符号注册表

记录被加上前缀的全局类和函数：原始名 -> (原始名, 前缀后的名字)。
PHP 的类名和函数名不区分大小写，因此键统一使用小写。
"""

from typing import Any, Dict, Iterable, List, Optional, Tuple

SymbolPair = Tuple[str, str]


def _normalize(name: str) -> str:
    return name.lstrip('\\').lower()


class SymbolsRegistry:
    """可合并的符号注册表

    合并是并集运算：满足交换律，重复记录合并多次结果不变。
    """

    def __init__(self):
        self._functions: Dict[str, SymbolPair] = {}
        self._classes: Dict[str, SymbolPair] = {}

    @classmethod
    def create_from_registries(cls, registries: Iterable[Optional['SymbolsRegistry']]) -> 'SymbolsRegistry':
        """合并多个注册表，None 和空注册表会被忽略"""
        merged = cls()
        for registry in registries:
            if registry is None or registry.count() == 0:
                continue
            merged.merge(registry)
        return merged

    def merge(self, other: 'SymbolsRegistry') -> None:
        self._functions.update(other._functions)
        self._classes.update(other._classes)

    def record_function(self, original: str, alias: str) -> None:
        self._functions[_normalize(original)] = (original.lstrip('\\'), alias.lstrip('\\'))

    def record_class(self, original: str, alias: str) -> None:
        self._classes[_normalize(original)] = (original.lstrip('\\'), alias.lstrip('\\'))

    def get_recorded_functions(self) -> List[SymbolPair]:
        return [self._functions[key] for key in sorted(self._functions)]

    def get_recorded_classes(self) -> List[SymbolPair]:
        return [self._classes[key] for key in sorted(self._classes)]

    def count(self) -> int:
        return len(self._functions) + len(self._classes)

    def copy(self) -> 'SymbolsRegistry':
        return SymbolsRegistry.create_from_registries([self])

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SymbolsRegistry):
            return NotImplemented
        return self._functions == other._functions and self._classes == other._classes

    def __repr__(self) -> str:
        return f"SymbolsRegistry(functions={len(self._functions)}, classes={len(self._classes)})"

    def to_dict(self) -> Dict[str, List[List[str]]]:
        return {
            'functions': [list(pair) for pair in self.get_recorded_functions()],
            'classes': [list(pair) for pair in self.get_recorded_classes()],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SymbolsRegistry':
        registry = cls()
        for original, alias in data.get('functions', []):
            registry.record_function(original, alias)
        for original, alias in data.get('classes', []):
            registry.record_class(original, alias)
        return registry
