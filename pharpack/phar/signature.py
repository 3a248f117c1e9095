"""
PHAR 签名

哈希签名（MD5/SHA1/SHA256/SHA512）直接追加摘要；OpenSSL 签名使用 RSA 私钥
(PKCS#1 v1.5 + SHA1)，并在 PHAR 旁边写出 `<phar>.pubkey` 公钥文件。
"""

import hashlib
import hmac
from typing import Optional

from ..config.schema import SigningAlgorithm

try:
    from cryptography.exceptions import InvalidSignature
    from cryptography.hazmat.primitives import hashes, serialization
    from cryptography.hazmat.primitives.asymmetric import padding, rsa
    OPENSSL_AVAILABLE = True
except ImportError:
    OPENSSL_AVAILABLE = False

SIGNATURE_MAGIC = b'GBMB'

SIGNATURE_FLAGS = {
    SigningAlgorithm.MD5: 0x0001,
    SigningAlgorithm.SHA1: 0x0002,
    SigningAlgorithm.SHA256: 0x0003,
    SigningAlgorithm.SHA512: 0x0004,
    SigningAlgorithm.OPENSSL: 0x0010,
}

HASH_TYPES = {
    SigningAlgorithm.MD5: 'MD5',
    SigningAlgorithm.SHA1: 'SHA-1',
    SigningAlgorithm.SHA256: 'SHA-256',
    SigningAlgorithm.SHA512: 'SHA-512',
    SigningAlgorithm.OPENSSL: 'OpenSSL',
}

_HASHLIB_NAMES = {
    SigningAlgorithm.MD5: 'md5',
    SigningAlgorithm.SHA1: 'sha1',
    SigningAlgorithm.SHA256: 'sha256',
    SigningAlgorithm.SHA512: 'sha512',
}


class SignatureError(Exception):
    """签名生成或校验失败"""
    pass


def algorithm_from_flag(flag: int) -> SigningAlgorithm:
    for algorithm, value in SIGNATURE_FLAGS.items():
        if value == flag:
            return algorithm
    raise SignatureError(f"未知的签名类型: 0x{flag:04x}")


def digest_size(algorithm: SigningAlgorithm) -> int:
    """哈希签名的摘要长度（字节）"""
    return hashlib.new(_HASHLIB_NAMES[algorithm]).digest_size


def _require_openssl() -> None:
    if not OPENSSL_AVAILABLE:
        raise SignatureError("OpenSSL 签名需要安装 cryptography 库")


def load_private_key(key_pem: bytes, passphrase: Optional[str] = None):
    """加载 PEM 私钥

    Raises:
        SignatureError: 私钥无效或口令错误
    """
    _require_openssl()
    password = passphrase.encode('utf-8') if passphrase else None
    try:
        key = serialization.load_pem_private_key(key_pem, password=password)
    except (ValueError, TypeError) as e:
        raise SignatureError(f"无法加载私钥（口令错误或私钥无效）: {e}") from e

    if not isinstance(key, rsa.RSAPrivateKey):
        raise SignatureError("OpenSSL 签名只支持 RSA 私钥")
    return key


def export_public_key(private_key) -> bytes:
    """导出与私钥对应的 PEM 公钥"""
    return private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def create_signature(algorithm: SigningAlgorithm, data: bytes, private_key=None) -> bytes:
    """计算签名字节

    Args:
        algorithm: 签名算法
        data: 被签名的数据（stub + manifest + 内容）
        private_key: OpenSSL 签名时使用的已加载私钥
    """
    if algorithm != SigningAlgorithm.OPENSSL:
        return hashlib.new(_HASHLIB_NAMES[algorithm], data).digest()

    _require_openssl()
    if private_key is None:
        raise SignatureError("OpenSSL 签名缺少私钥")
    return private_key.sign(data, padding.PKCS1v15(), hashes.SHA1())


def verify_signature(
    algorithm: SigningAlgorithm,
    data: bytes,
    signature: bytes,
    public_key_pem: Optional[bytes] = None,
) -> bool:
    """校验签名"""
    if algorithm != SigningAlgorithm.OPENSSL:
        expected = hashlib.new(_HASHLIB_NAMES[algorithm], data).digest()
        return hmac.compare_digest(expected, signature)

    _require_openssl()
    if public_key_pem is None:
        raise SignatureError("校验 OpenSSL 签名需要公钥文件")

    try:
        public_key = serialization.load_pem_public_key(public_key_pem)
    except ValueError as e:
        raise SignatureError(f"无效的公钥: {e}") from e

    try:
        public_key.verify(signature, data, padding.PKCS1v15(), hashes.SHA1())
    except InvalidSignature:
        return False
    return True
