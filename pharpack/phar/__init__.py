"""PHAR 容器格式

归档读写、条目压缩、签名和 PHP 元数据序列化。
"""

from ..config.schema import CompressionAlgorithm, SigningAlgorithm
from .archive import Phar, PharEntry, PharError, DEFAULT_STUB
from .compression import get_required_extension, is_codec_available
from .signature import OPENSSL_AVAILABLE

__all__ = [
    "Phar",
    "PharEntry",
    "PharError",
    "DEFAULT_STUB",
    "CompressionAlgorithm",
    "SigningAlgorithm",
    "get_required_extension",
    "is_codec_available",
    "OPENSSL_AVAILABLE",
]
