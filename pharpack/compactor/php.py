"""
PHP 压缩器

去掉注释并折叠空白，保持行数不变（错误信息中的行号依然有效）。
字符串、heredoc/nowdoc、内联 HTML 和属性 `#[...]` 原样保留。
"""

import re
from typing import Iterable, List

from .base import FileExtensionCompactor

_OPEN_TAG = re.compile(r'<\?php(?=\s)|<\?=', re.IGNORECASE)
_PLAIN = re.compile(r'[^\s#/\'"`<?]+')
_WHITESPACE = re.compile(r'\s+')
_HEREDOC = re.compile(r'<<<[ \t]*(["\']?)([A-Za-z_][A-Za-z0-9_]*)\1\r?\n')
_NEWLINES = re.compile(r'\r\n|\r')
_BLANKS = re.compile(r'[ \t]+')
_INDENT = re.compile(r'\n +')


def _collapse_whitespace(whitespace: str) -> str:
    whitespace = _NEWLINES.sub('\n', whitespace)
    whitespace = _BLANKS.sub(' ', whitespace)
    return _INDENT.sub('\n', whitespace)


def _skip_quoted(source: str, start: int, quote: str) -> int:
    position = start + 1
    while position < len(source):
        char = source[position]
        if char == '\\':
            position += 2
            continue
        if char == quote:
            return position + 1
        position += 1
    return len(source)


def _skip_heredoc(source: str, match: 're.Match') -> int:
    closing = re.compile(r'^[ \t]*' + re.escape(match.group(2)) + r'(?![A-Za-z0-9_])', re.MULTILINE)
    end = closing.search(source, match.end())
    return end.end() if end else len(source)


def _strip_code(source: str, position: int, output: List[str]) -> int:
    """处理 PHP 代码段，返回 `?>` 之后（或源码末尾）的位置"""
    length = len(source)

    while position < length:
        plain = _PLAIN.match(source, position)
        if plain:
            output.append(plain.group())
            position = plain.end()
            continue

        char = source[position]

        if source.startswith('?>', position):
            output.append('?>')
            return position + 2

        if char.isspace():
            whitespace = _WHITESPACE.match(source, position)
            output.append(_collapse_whitespace(whitespace.group()))
            position = whitespace.end()
            continue

        if source.startswith('//', position) or (char == '#' and not source.startswith('#[', position)):
            while position < length and source[position] not in '\r\n' and not source.startswith('?>', position):
                position += 1
            continue

        if source.startswith('/*', position):
            end = source.find('*/', position + 2)
            end = length if end < 0 else end + 2
            output.append('\n' * _NEWLINES.sub('\n', source[position:end]).count('\n'))
            position = end
            continue

        if char in '\'"`':
            end = _skip_quoted(source, position, char)
            output.append(source[position:end])
            position = end
            continue

        heredoc = _HEREDOC.match(source, position)
        if heredoc:
            end = _skip_heredoc(source, heredoc)
            output.append(source[position:end])
            position = end
            continue

        output.append(char)
        position += 1

    return position


def strip_php(source: str) -> str:
    """去掉 PHP 源码中的注释和多余空白"""
    output: List[str] = []
    position = 0

    while position < len(source):
        tag = _OPEN_TAG.search(source, position)
        if tag is None:
            output.append(source[position:])
            break

        output.append(source[position:tag.end()])
        position = _strip_code(source, tag.end(), output)

    return ''.join(output)


class Php(FileExtensionCompactor):
    """PHP 源码压缩器"""

    def __init__(self, extensions: Iterable[str] = ('php',)):
        super().__init__(extensions)

    def compact_content(self, contents: str) -> str:
        return strip_php(contents)
