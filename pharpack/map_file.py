"""
路径映射

把源文件路径映射为归档内路径：先计算相对 base_path 的路径，再按顺序应用映射规则。
"""

from pathlib import Path
from typing import Iterable, List, Tuple, Union

from .utils.paths import make_path_relative


class MapFile:
    """有序的 (match, replace) 前缀映射

    第一条匹配的规则生效；match 按完整的路径片段匹配，`src` 不会匹配 `srcfoo/`。
    空 match 匹配所有路径（映射为 replace/相对路径）。
    没有规则匹配时返回相对路径本身。
    """

    def __init__(self, base_path: Union[str, Path], rules: Iterable[Tuple[str, str]] = ()):
        self.base_path = str(base_path)
        self.rules: List[Tuple[str, str]] = [
            (match.replace('\\', '/').strip('/'), replace.replace('\\', '/').strip('/'))
            for match, replace in rules
        ]

    @classmethod
    def from_config(cls, config) -> 'MapFile':
        return cls(config.base_path, [(rule.match, rule.replace) for rule in config.map])

    def __call__(self, path: Union[str, Path]) -> str:
        relative = make_path_relative(path, self.base_path)

        for match, replace in self.rules:
            if match == '':
                return f'{replace}/{relative}'.lstrip('/')

            if relative == match or relative.startswith(match + '/'):
                return f'{replace}{relative[len(match):]}'.lstrip('/')

        return relative

    def __repr__(self) -> str:
        return f"MapFile(base_path={self.base_path!r}, rules={self.rules!r})"
