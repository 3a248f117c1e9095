"""
PHP 符号作用域（前缀）

给打包的 PHP 代码的命名空间和 use 导入加上统一前缀，避免与运行环境中的同名类冲突。
这是基于正则的文本改写，不做语法分析：

- `namespace Foo;` -> `namespace Prefix\\Foo;`
- 命名空间顶层的 `use Foo\\Bar;` -> `use Prefix\\Foo\\Bar;`（类体内的 trait 导入不变）
- 完全限定名 `\\Foo\\Bar` -> `\\Prefix\\Foo\\Bar`
- 全局命名空间中声明类或函数的文件被移入前缀命名空间，
  文件中引用的其他全局类改为完全限定（`Exception` -> `\\Exception`），
  声明的符号记录到 SymbolsRegistry，供自动加载时创建别名
- 排除的命名空间和已带前缀的名字保持不变
"""

import bisect
import re
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional, Set

from .base import FileExtensionCompactor
from .symbols import SymbolsRegistry

_IDENTIFIER = r'[A-Za-z_][A-Za-z0-9_]*'
_NAME = rf'\\?{_IDENTIFIER}(?:\\{_IDENTIFIER})*'

_OPEN_TAG = re.compile(r'<\?php', re.IGNORECASE)
_NAMESPACE = re.compile(
    rf'^[ \t]*namespace[ \t]+(?P<name>{_IDENTIFIER}(?:\\{_IDENTIFIER})*)[ \t]*(?P<open>[;{{])',
    re.MULTILINE,
)
_GLOBAL_NAMESPACE_BLOCK = re.compile(r'^[ \t]*namespace[ \t]*\{', re.MULTILINE)
_USE = re.compile(
    rf'^[ \t]*use[ \t]+(?:function[ \t]+|const[ \t]+)?\\?(?P<name>{_IDENTIFIER}(?:\\{_IDENTIFIER})+)',
    re.MULTILINE,
)
_CLASS_IMPORT = re.compile(
    rf'^use[ \t]+\\?(?P<name>{_IDENTIFIER}(?:\\{_IDENTIFIER})*)(?:[ \t]+as[ \t]+(?P<alias>{_IDENTIFIER}))?[ \t]*;',
    re.MULTILINE | re.IGNORECASE,
)
_FULLY_QUALIFIED = re.compile(rf'(?<![A-Za-z0-9_\\$])\\(?P<name>{_IDENTIFIER}(?:\\{_IDENTIFIER})+)')
_CLASS = re.compile(
    rf'^(?:(?:abstract|final|readonly)[ \t]+)*(?:class|interface|trait|enum)[ \t]+(?P<name>{_IDENTIFIER})',
    re.MULTILINE,
)
_FUNCTION = re.compile(rf'^function[ \t]+&?[ \t]*(?P<name>{_IDENTIFIER})[ \t]*\(', re.MULTILINE)
_FILE_HEAD = re.compile(r'\A.*?<\?php\s+(?:declare\s*\([^)]*\)[ \t]*;)?', re.IGNORECASE | re.DOTALL)

_STRING_OR_COMMENT = (
    r"'(?:[^'\\]|\\.)*'"
    r'|"(?:[^"\\]|\\.)*"'
    r'|//[^\n]*|#(?!\[)[^\n]*|/\*.*?\*/'
)
_CODE_SKIP = re.compile(_STRING_OR_COMMENT, re.DOTALL)
# 花括号计数时跳过字符串和注释
_BRACE_TOKENS = re.compile(_STRING_OR_COMMENT + r'|[{}]', re.DOTALL)

# 全局文件中引用类名的位置
_CLASS_REFERENCES = (
    re.compile(rf'\b(?:new|instanceof|insteadof)\s+(?P<list>{_NAME})', re.IGNORECASE),
    re.compile(rf'\b(?:extends|implements)\s+(?P<list>{_NAME}(?:\s*,\s*{_NAME})*)', re.IGNORECASE),
    re.compile(rf'\bcatch\s*\(\s*(?P<list>{_NAME}(?:\s*\|\s*{_NAME})*)', re.IGNORECASE),
    re.compile(rf'(?<![A-Za-z0-9_\\$>:])(?P<list>{_NAME})(?=\s*::)'),
    # 参数类型
    re.compile(rf'(?<=[(,])\s*\??(?P<list>{_NAME})(?=\s+&?(?:\.\.\.)?\$)'),
    # 返回值类型
    re.compile(
        rf'\b(?:function|fn)\s*&?\s*(?:{_IDENTIFIER})?\s*\([^{{;]*?\)\s*:\s*\??(?P<list>{_NAME})',
        re.IGNORECASE,
    ),
    # 类体内的 trait 导入
    re.compile(rf'^[ \t]+use[ \t]+(?P<list>{_NAME}(?:\s*,\s*{_NAME})*)\s*[;{{]', re.MULTILINE),
    # 属性类型
    re.compile(
        rf'\b(?:public|protected|private|var)\s+(?:static\s+|readonly\s+)*\??(?P<list>{_NAME})(?=\s+\$)',
        re.IGNORECASE,
    ),
)
_LIST_ITEM = re.compile(_NAME)

_RESERVED_NAMES = frozenset((
    'array', 'bool', 'callable', 'class', 'false', 'float', 'int', 'iterable', 'mixed', 'never',
    'null', 'object', 'parent', 'self', 'static', 'string', 'true', 'void',
))


def _brace_depths(contents: str):
    """返回 (位置列表, 对应位置之后的花括号深度列表)"""
    positions: List[int] = []
    depths: List[int] = []
    depth = 0
    for match in _BRACE_TOKENS.finditer(contents):
        token = match.group(0)
        if token == '{':
            depth += 1
        elif token == '}':
            depth -= 1
        else:
            continue
        positions.append(match.start())
        depths.append(depth)
    return positions, depths


def _sub_code(pattern: 're.Pattern', repl, contents: str) -> str:
    """只在字符串和注释之外的代码片段上替换"""
    parts = []
    last = 0
    for match in _CODE_SKIP.finditer(contents):
        parts.append(pattern.sub(repl, contents[last:match.start()]))
        parts.append(match.group(0))
        last = match.end()
    parts.append(pattern.sub(repl, contents[last:]))
    return ''.join(parts)


class ScopingError(Exception):
    """文件无法加前缀"""
    pass


class Scoper(ABC):
    """符号前缀器接口"""

    @abstractmethod
    def scope(self, file: str, contents: str) -> str:
        pass

    @abstractmethod
    def get_prefix(self) -> str:
        pass

    @abstractmethod
    def get_symbols_registry(self) -> SymbolsRegistry:
        pass

    @abstractmethod
    def change_symbols_registry(self, registry: SymbolsRegistry) -> None:
        pass


class NullScoper(Scoper):
    """未启用前缀时使用，不修改任何内容"""

    def __init__(self):
        self._registry = SymbolsRegistry()

    def scope(self, file: str, contents: str) -> str:
        return contents

    def get_prefix(self) -> str:
        return ''

    def get_symbols_registry(self) -> SymbolsRegistry:
        return self._registry

    def change_symbols_registry(self, registry: SymbolsRegistry) -> None:
        self._registry = registry


class NamespaceScoper(Scoper):
    """基于命名空间改写的前缀器

    Args:
        prefix: 命名空间前缀
        exclude_namespaces: 不加前缀的命名空间
        expose_global_classes: 是否记录全局类以便创建别名
        expose_global_functions: 是否记录全局函数以便创建包装函数
    """

    def __init__(
        self,
        prefix: str,
        exclude_namespaces: Iterable[str] = (),
        expose_global_classes: bool = True,
        expose_global_functions: bool = True,
    ):
        self.prefix = prefix.strip('\\')
        self.exclude_namespaces = [ns.strip('\\').lower() for ns in exclude_namespaces]
        self.expose_global_classes = expose_global_classes
        self.expose_global_functions = expose_global_functions
        self._registry = SymbolsRegistry()

    def get_prefix(self) -> str:
        return self.prefix

    def get_symbols_registry(self) -> SymbolsRegistry:
        return self._registry

    def change_symbols_registry(self, registry: SymbolsRegistry) -> None:
        self._registry = registry

    def scope(self, file: str, contents: str) -> str:
        """给单个文件加前缀

        Raises:
            ScopingError: 文件包含无法处理的全局命名空间块
        """
        if not _OPEN_TAG.search(contents):
            return contents

        if _GLOBAL_NAMESPACE_BLOCK.search(contents):
            raise ScopingError(f'无法处理 "{file}" 中的全局命名空间块 "namespace {{"')

        namespaces = list(_NAMESPACE.finditer(contents))
        if namespaces:
            contents = _NAMESPACE.sub(self._prefix_match, contents)

        contents = _FULLY_QUALIFIED.sub(self._prefix_match, contents)
        contents = self._prefix_imports(contents, namespaces)

        if not namespaces:
            contents = self._scope_global_file(contents)

        return contents

    def _prefix_imports(self, contents: str, namespaces: List['re.Match']) -> str:
        """只改写命名空间顶层的导入，类体内的 use 是 trait 导入"""
        top_depth = 1 if any(match.group('open') == '{' for match in namespaces) else 0
        positions, depths = _brace_depths(contents)

        def prefix_import(match: 're.Match') -> str:
            index = bisect.bisect_right(positions, match.start()) - 1
            depth = depths[index] if index >= 0 else 0
            if depth != top_depth:
                return match.group(0)
            return self._prefix_match(match)

        return _USE.sub(prefix_import, contents)

    def _scope_global_file(self, contents: str) -> str:
        classes = [match.group('name') for match in _CLASS.finditer(contents)]
        functions = [match.group('name') for match in _FUNCTION.finditer(contents)]

        if not classes and not functions:
            return contents

        local_names = {name.lower() for name in classes}
        for match in _CLASS_IMPORT.finditer(contents):
            alias = match.group('alias') or match.group('name').rsplit('\\', 1)[-1]
            local_names.add(alias.lower())
        contents = self._qualify_global_references(contents, local_names)

        for name in classes:
            if self.expose_global_classes:
                self._registry.record_class(name, f'{self.prefix}\\{name}')
        for name in functions:
            if self.expose_global_functions:
                self._registry.record_function(name, f'{self.prefix}\\{name}')

        head = _FILE_HEAD.match(contents)
        if head is None:
            raise ScopingError("找不到插入命名空间声明的位置")

        # 插入到同一行，保持行号不变
        position = head.end()
        separator = '' if contents[position - 1:position].isspace() else ' '
        return f'{contents[:position]}{separator}namespace {self.prefix}; {contents[position:]}'

    def _qualify_global_references(self, contents: str, local_names: Set[str]) -> str:
        """文件移入前缀命名空间前，把引用的其他全局类改为完全限定名"""

        def qualify_name(name: str) -> str:
            if name.startswith('\\'):
                return name
            if '\\' in name:
                first = name.split('\\', 1)[0].lower()
                if first in local_names or not self._is_excluded(name):
                    return name
                return '\\' + name
            lowered = name.lower()
            if lowered in _RESERVED_NAMES or lowered in local_names:
                return name
            return '\\' + name

        def qualify_list(match: 're.Match') -> str:
            start, end = match.span('list')
            offset = match.start()
            names = _LIST_ITEM.sub(lambda item: qualify_name(item.group(0)), match.group('list'))
            text = match.group(0)
            return f'{text[:start - offset]}{names}{text[end - offset:]}'

        for pattern in _CLASS_REFERENCES:
            contents = _sub_code(pattern, qualify_list, contents)
        return contents

    def _prefix_match(self, match: 're.Match') -> str:
        name = match.group('name')
        if self._is_excluded(name) or self._is_prefixed(name):
            return match.group(0)

        offset = match.start('name') - match.start()
        text = match.group(0)
        return f'{text[:offset]}{self.prefix}\\{text[offset:]}'

    def _is_excluded(self, name: str) -> bool:
        lowered = name.lower()
        return any(lowered == ns or lowered.startswith(ns + '\\') for ns in self.exclude_namespaces)

    def _is_prefixed(self, name: str) -> bool:
        lowered = name.lower()
        prefix = self.prefix.lower()
        return lowered == prefix or lowered.startswith(prefix + '\\')


class PhpScoper(FileExtensionCompactor):
    """给 PHP 文件加前缀的压缩器；无法处理的文件原样返回"""

    def __init__(self, scoper: Scoper, extensions: Iterable[str] = ('php',)):
        super().__init__(extensions)
        self.scoper = scoper

    def compact(self, file: str, contents: str) -> str:
        if not self.supports(file):
            return contents
        return self._scope(file, contents)

    def compact_content(self, contents: str) -> str:
        return self._scope('', contents)

    def _scope(self, file: str, contents: str) -> str:
        try:
            return self.scoper.scope(file, contents)
        except ScopingError:
            return contents

    def as_scoper(self) -> Optional[Scoper]:
        return self.scoper
