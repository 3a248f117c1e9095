"""
PHAR 元数据编码

PHAR 的元数据以 PHP serialize() 格式存储，这里实现常用标量、列表和字典的编解码。
"""

import math
from typing import Any, Tuple


class MetadataError(ValueError):
    """元数据编解码错误"""
    pass


def serialize(value: Any) -> bytes:
    """把 Python 值编码为 PHP serialize() 格式

    支持 None、bool、int、float、str、bytes、list/tuple 和 dict。

    Raises:
        MetadataError: 不支持的值类型
    """
    if value is None:
        return b'N;'
    if isinstance(value, bool):
        return b'b:1;' if value else b'b:0;'
    if isinstance(value, int):
        return f'i:{value};'.encode('ascii')
    if isinstance(value, float):
        return f'd:{_format_float(value)};'.encode('ascii')
    if isinstance(value, str):
        value = value.encode('utf-8')
    if isinstance(value, bytes):
        return b's:%d:"' % len(value) + value + b'";'
    if isinstance(value, (list, tuple)):
        return _serialize_array(enumerate(value), len(value))
    if isinstance(value, dict):
        return _serialize_array(value.items(), len(value))

    raise MetadataError(f"无法序列化为 PHP 元数据的类型: {type(value).__name__}")


def _format_float(value: float) -> str:
    if math.isnan(value):
        return 'NAN'
    if math.isinf(value):
        return 'INF' if value > 0 else '-INF'
    return repr(value)


def _serialize_array(items, count: int) -> bytes:
    parts = [b'a:%d:{' % count]
    for key, item in items:
        if not isinstance(key, (int, str)) or isinstance(key, bool):
            raise MetadataError(f"PHP 数组的键只能是 int 或 str，实际为: {type(key).__name__}")
        parts.append(serialize(key))
        parts.append(serialize(item))
    parts.append(b'}')
    return b''.join(parts)


def unserialize(data: bytes) -> Any:
    """解码 PHP serialize() 格式

    PHP 数组：键为 0..n-1 连续整数时返回 list，否则返回 dict。

    Raises:
        MetadataError: 数据格式错误
    """
    value, offset = _parse(data, 0)
    if offset != len(data):
        raise MetadataError(f"元数据末尾存在多余数据（偏移 {offset}）")
    return value


def _read_until(data: bytes, offset: int, terminator: bytes) -> Tuple[bytes, int]:
    end = data.find(terminator, offset)
    if end < 0:
        raise MetadataError(f"元数据被截断（偏移 {offset}）")
    return data[offset:end], end + len(terminator)


def _parse(data: bytes, offset: int) -> Tuple[Any, int]:
    kind = data[offset:offset + 1]

    if kind == b'N':
        if data[offset:offset + 2] != b'N;':
            raise MetadataError(f"无效的 null 值（偏移 {offset}）")
        return None, offset + 2

    if data[offset + 1:offset + 2] != b':':
        raise MetadataError(f"无效的元数据标记（偏移 {offset}）")

    if kind == b'b':
        raw, offset = _read_until(data, offset + 2, b';')
        return raw == b'1', offset

    if kind == b'i':
        raw, offset = _read_until(data, offset + 2, b';')
        return int(raw), offset

    if kind == b'd':
        raw, offset = _read_until(data, offset + 2, b';')
        text = raw.decode('ascii')
        special = {'NAN': math.nan, 'INF': math.inf, '-INF': -math.inf}
        return special[text] if text in special else float(text), offset

    if kind == b's':
        raw_length, offset = _read_until(data, offset + 2, b':')
        length = int(raw_length)
        start = offset + 1
        raw = data[start:start + length]
        if len(raw) != length or data[start + length:start + length + 2] != b'";':
            raise MetadataError(f"字符串长度不匹配（偏移 {offset}）")
        try:
            value = raw.decode('utf-8')
        except UnicodeDecodeError:
            value = raw
        return value, start + length + 2

    if kind == b'a':
        raw_count, offset = _read_until(data, offset + 2, b':')
        if data[offset:offset + 1] != b'{':
            raise MetadataError(f"无效的数组（偏移 {offset}）")
        offset += 1
        result = {}
        for _ in range(int(raw_count)):
            key, offset = _parse(data, offset)
            item, offset = _parse(data, offset)
            result[key] = item
        if data[offset:offset + 1] != b'}':
            raise MetadataError(f"数组未正确结束（偏移 {offset}）")
        if list(result.keys()) == list(range(len(result))):
            return list(result.values()), offset + 1
        return result, offset + 1

    raise MetadataError(f"不支持的元数据类型 {kind!r}（偏移 {offset}）")
