"""
stub 生成器

生成归档开头的引导代码：shebang、横幅注释、Phar::mapPhar()、
可选的 interceptFileFuncs 和运行环境检查，最后加载入口脚本。
"""

from dataclasses import dataclass
from typing import List, Optional

REQUIREMENTS_CHECKER_SCRIPT = '.box/bin/check-requirements.php'


def _quote(value: str) -> str:
    """PHP 单引号字符串"""
    return "'" + value.replace('\\', '\\\\').replace("'", "\\'") + "'"


def _format_banner(banner: str) -> List[str]:
    lines = ['/*']
    for line in banner.split('\n'):
        lines.append(f' * {line}'.rstrip())
    lines.append(' */')
    return lines


@dataclass
class StubGenerator:
    """stub 生成器

    Attributes:
        alias: 归档别名
        banner: 横幅注释内容（多行）
        index: 入口脚本在归档内的路径
        intercept: 是否调用 Phar::interceptFileFuncs()
        shebang: shebang 行
        check_requirements: 是否在加载入口前运行环境检查
    """
    alias: Optional[str] = None
    banner: Optional[str] = None
    index: Optional[str] = None
    intercept: bool = False
    shebang: Optional[str] = None
    check_requirements: bool = False

    def generate(self) -> str:
        stub: List[str] = []

        if self.shebang:
            stub.append(self.shebang)

        stub.append('<?php')
        stub.append('')

        if self.banner:
            stub.extend(_format_banner(self.banner))
            stub.append('')

        if self.alias:
            stub.append(f'Phar::mapPhar({_quote(self.alias)});')
            stub.append('')

        if self.intercept:
            stub.append('Phar::interceptFileFuncs();')
            stub.append('')

        if self.check_requirements:
            stub.append('// Check requirements')
            stub.append(f'require {self._phar_path(REQUIREMENTS_CHECKER_SCRIPT)};')
            stub.append('')

        if self.index:
            stub.append(f'require {self._phar_path(self.index)};')
            stub.append('')

        stub.append('__HALT_COMPILER(); ?>')

        return '\n'.join(stub) + '\n'

    def _phar_path(self, file: str) -> str:
        if self.alias:
            return _quote(f'phar://{self.alias}/{file}')
        return f"'phar://' . __FILE__ . {_quote('/' + file)}"


def generate_stub(
    alias: Optional[str] = None,
    banner: Optional[str] = None,
    index: Optional[str] = None,
    intercept: bool = False,
    shebang: Optional[str] = None,
    check_requirements: bool = False,
) -> str:
    """便捷函数：生成 stub"""
    return StubGenerator(alias, banner, index, intercept, shebang, check_requirements).generate()
