"""
条目压缩编解码

PHAR 的每个条目单独压缩：gz 为原始 deflate 流（无 zlib 头），bz2 为标准 bzip2 流。
"""

import importlib
import importlib.util
from typing import Optional

from ..config.schema import CompressionAlgorithm

ENTRY_COMPRESSED_GZ = 0x00001000
ENTRY_COMPRESSED_BZ2 = 0x00002000
ENTRY_COMPRESSION_MASK = 0x0000F000
ENTRY_PERMISSION_MASK = 0x000001FF

_ENTRY_FLAGS = {
    CompressionAlgorithm.NONE: 0,
    CompressionAlgorithm.GZ: ENTRY_COMPRESSED_GZ,
    CompressionAlgorithm.BZ2: ENTRY_COMPRESSED_BZ2,
}

# 运行压缩后的 PHAR 时 PHP 需要的扩展
_REQUIRED_EXTENSIONS = {
    CompressionAlgorithm.NONE: None,
    CompressionAlgorithm.GZ: 'zlib',
    CompressionAlgorithm.BZ2: 'bz2',
}

# 生成压缩条目时本进程需要的编解码模块
_CODEC_MODULES = {
    CompressionAlgorithm.NONE: None,
    CompressionAlgorithm.GZ: 'zlib',
    CompressionAlgorithm.BZ2: 'bz2',
}


class CodecError(Exception):
    """条目压缩或解压失败"""
    pass


def get_entry_flag(algorithm: CompressionAlgorithm) -> int:
    return _ENTRY_FLAGS[algorithm]


def algorithm_from_entry_flags(flags: int) -> CompressionAlgorithm:
    """根据条目标志位解析压缩算法"""
    compression = flags & ENTRY_COMPRESSION_MASK
    for algorithm, flag in _ENTRY_FLAGS.items():
        if flag == compression:
            return algorithm
    raise CodecError(f"未知的条目压缩标志: 0x{compression:04x}")


def get_required_extension(algorithm: CompressionAlgorithm) -> Optional[str]:
    return _REQUIRED_EXTENSIONS[algorithm]


def get_codec_module(algorithm: CompressionAlgorithm) -> Optional[str]:
    return _CODEC_MODULES[algorithm]


def is_codec_available(algorithm: CompressionAlgorithm) -> bool:
    """检查当前解释器是否具备该算法的编解码能力"""
    module = get_codec_module(algorithm)
    return module is None or importlib.util.find_spec(module) is not None


def compress_bytes(data: bytes, algorithm: CompressionAlgorithm) -> bytes:
    """压缩单个条目的内容"""
    if algorithm == CompressionAlgorithm.NONE:
        return data

    codec = importlib.import_module(get_codec_module(algorithm))

    if algorithm == CompressionAlgorithm.GZ:
        compressor = codec.compressobj(9, codec.DEFLATED, -15)
        return compressor.compress(data) + compressor.flush()

    return codec.compress(data, 9)


def decompress_bytes(data: bytes, algorithm: CompressionAlgorithm) -> bytes:
    """解压单个条目的内容

    Raises:
        CodecError: 数据损坏
    """
    if algorithm == CompressionAlgorithm.NONE:
        return data

    codec = importlib.import_module(get_codec_module(algorithm))
    codec_error = getattr(codec, 'error', ValueError)

    try:
        if algorithm == CompressionAlgorithm.GZ:
            return codec.decompress(data, -15)
        return codec.decompress(data)
    except (OSError, ValueError, codec_error) as e:
        raise CodecError(f"{algorithm.value} 解压失败: {e}") from e
