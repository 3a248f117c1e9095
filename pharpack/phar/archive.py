"""
PHAR 归档读写

实现 PHAR 容器格式：stub、manifest（别名、元数据、条目表）、条目内容和签名尾部。
缓冲模式下修改只保存在内存中，每次落盘都先写到同目录的临时文件再原子替换。
"""

import binascii
import contextlib
import os
import re
import struct
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from ..config.schema import CompressionAlgorithm, SigningAlgorithm
from ..utils.logging import debug, LogStage
from ..utils.paths import normalize_path, safe_path_join
from . import compression, metadata, signature
from .compression import CodecError
from .signature import SignatureError

HALT_COMPILER_PATTERN = re.compile(rb'__halt_compiler\(\);', re.IGNORECASE)
STUB_TERMINATOR = b' ?>\r\n'
API_VERSION = b'\x11\x10'

GLOBAL_SIGNED = 0x00010000
_RESERVED_GLOBAL_FLAGS = GLOBAL_SIGNED | compression.ENTRY_COMPRESSION_MASK

DEFAULT_STUB = b'<?php __HALT_COMPILER(); ?>\r\n'
DEFAULT_PERMISSIONS = 0o644

_INVALID_ALIAS_CHARS = '/\\:;'


class PharError(Exception):
    """PHAR 读写错误"""
    pass


def _now() -> int:
    return int(time.time())


@dataclass
class PharEntry:
    """归档中的单个文件（内容始终为解压后的原始字节）"""
    name: str
    contents: bytes
    timestamp: int = field(default_factory=_now)
    permissions: int = DEFAULT_PERMISSIONS
    compression: CompressionAlgorithm = CompressionAlgorithm.NONE
    metadata: bytes = b''

    @property
    def size(self) -> int:
        return len(self.contents)

    @property
    def crc32(self) -> int:
        return binascii.crc32(self.contents) & 0xFFFFFFFF

    def is_compressed(self) -> bool:
        return self.compression != CompressionAlgorithm.NONE


class _Reader:
    """按顺序读取二进制数据"""

    def __init__(self, data: bytes, offset: int = 0):
        self.data = data
        self.offset = offset

    def unpack(self, fmt: str) -> Tuple[int, ...]:
        size = struct.calcsize(fmt)
        if self.offset + size > len(self.data):
            raise PharError(f"PHAR 文件被截断（偏移 {self.offset}）")
        values = struct.unpack_from(fmt, self.data, self.offset)
        self.offset += size
        return values

    def uint32(self) -> int:
        return self.unpack('<I')[0]

    def chunk(self, length: int) -> bytes:
        if self.offset + length > len(self.data):
            raise PharError(f"PHAR 文件被截断（偏移 {self.offset}）")
        value = self.data[self.offset:self.offset + length]
        self.offset += length
        return value


def _normalize_entry_name(name: str) -> str:
    normalized = normalize_path(str(name).replace('\\', '/').lstrip('/'))
    if not normalized or normalized.startswith('../') or normalized == '..':
        raise PharError(f'无效的归档内路径: "{name}"')
    return normalized


class Phar:
    """PHAR 归档

    Args:
        path: 归档文件路径，文件存在时读取已有内容
        flags: 附加到 manifest 全局标志位的自定义标志
        alias: 归档别名
    """

    def __init__(self, path: Union[str, Path], flags: int = 0, alias: Optional[str] = None):
        self.path = Path(path)
        self._flags = flags & ~_RESERVED_GLOBAL_FLAGS
        self._entries: Dict[str, PharEntry] = {}
        self._stub = DEFAULT_STUB
        self._alias: Optional[str] = None
        self._metadata = b''
        self._signature_algorithm = SigningAlgorithm.SHA1
        self._private_key = None
        self._signature: Optional[bytes] = None
        self._signed_data: Optional[bytes] = None
        self._buffering = False

        if self.path.is_file():
            self._load()

        if alias is not None:
            self._validate_alias(alias)
            self._alias = alias

    # ------------------------------------------------------------------
    # 读取
    # ------------------------------------------------------------------

    def _load(self) -> None:
        data = self.path.read_bytes()

        match = HALT_COMPILER_PATTERN.search(data)
        if match is None:
            raise PharError(f"{self.path} 不是有效的 PHAR 文件：缺少 __HALT_COMPILER();")

        offset = match.end()
        for terminator in (b' ?>\r\n', b' ?>\n', b'?>\r\n', b'?>\n', b' ?>', b'?>'):
            if data.startswith(terminator, offset):
                offset += len(terminator)
                break
        self._stub = data[:offset]

        reader = _Reader(data, offset)
        manifest_length = reader.uint32()
        manifest_end = reader.offset + manifest_length
        entry_count = reader.uint32()
        reader.chunk(len(API_VERSION))
        global_flags = reader.uint32()
        alias = reader.chunk(reader.uint32())
        self._metadata = reader.chunk(reader.uint32())

        records = []
        for _ in range(entry_count):
            name = reader.chunk(reader.uint32()).decode('utf-8')
            size, timestamp, compressed_size, crc, flags = reader.unpack('<IIIII')
            entry_metadata = reader.chunk(reader.uint32())
            records.append((name, size, timestamp, compressed_size, crc, flags, entry_metadata))

        if reader.offset != manifest_end:
            raise PharError(f"{self.path} 的 manifest 长度不一致")

        for name, size, timestamp, compressed_size, crc, flags, entry_metadata in records:
            try:
                algorithm = compression.algorithm_from_entry_flags(flags)
                contents = compression.decompress_bytes(reader.chunk(compressed_size), algorithm)
            except CodecError as e:
                raise PharError(f'条目 "{name}" 损坏: {e}') from e

            entry = PharEntry(
                name=name,
                contents=contents,
                timestamp=timestamp,
                permissions=flags & compression.ENTRY_PERMISSION_MASK,
                compression=algorithm,
                metadata=entry_metadata,
            )
            if entry.size != size or entry.crc32 != crc:
                raise PharError(f'条目 "{name}" 的 CRC 校验失败')
            self._entries[name] = entry

        if global_flags & GLOBAL_SIGNED:
            self._read_signature(data, reader.offset)

        self._alias = alias.decode('utf-8') or None
        self._flags = global_flags & ~_RESERVED_GLOBAL_FLAGS

    def _read_signature(self, data: bytes, contents_end: int) -> None:
        if data[-4:] != signature.SIGNATURE_MAGIC:
            raise PharError(f"{self.path} 的签名尾部缺少 GBMB 标记")

        try:
            algorithm = signature.algorithm_from_flag(struct.unpack('<I', data[-8:-4])[0])
        except SignatureError as e:
            raise PharError(str(e)) from e

        if algorithm == SigningAlgorithm.OPENSSL:
            length = struct.unpack('<I', data[-12:-8])[0]
            start = len(data) - 12 - length
        else:
            length = signature.digest_size(algorithm)
            start = len(data) - 8 - length

        if start != contents_end:
            raise PharError(f"{self.path} 的签名位置与内容末尾不一致")

        self._signature = data[start:start + length]
        self._signed_data = data[:start]
        self._signature_algorithm = algorithm

        # 哈希签名在打开时即校验；OpenSSL 签名需要公钥，由 verify_signature() 校验
        if algorithm != SigningAlgorithm.OPENSSL:
            if not signature.verify_signature(algorithm, self._signed_data, self._signature):
                raise PharError(f"{self.path} 的签名校验失败，文件可能已损坏")

    # ------------------------------------------------------------------
    # 缓冲
    # ------------------------------------------------------------------

    def start_buffering(self) -> None:
        self._buffering = True

    def stop_buffering(self) -> None:
        """结束缓冲并把当前状态写入磁盘"""
        self._buffering = False
        self._flush()

    def is_buffering(self) -> bool:
        return self._buffering

    def _changed(self) -> None:
        if not self._buffering:
            self._flush()

    # ------------------------------------------------------------------
    # stub / 别名 / 元数据
    # ------------------------------------------------------------------

    def set_stub(self, stub: Union[str, bytes]) -> None:
        """设置 stub，`__HALT_COMPILER();` 之后的内容会被替换为标准结尾

        Raises:
            PharError: stub 中缺少 __HALT_COMPILER();
        """
        raw = stub.encode('utf-8') if isinstance(stub, str) else stub
        match = HALT_COMPILER_PATTERN.search(raw)
        if match is None:
            raise PharError('非法的 stub：缺少 "__HALT_COMPILER();"')
        self._stub = raw[:match.end()] + STUB_TERMINATOR
        self._changed()

    def get_stub(self) -> str:
        return self._stub.decode('utf-8', errors='surrogateescape')

    def set_default_stub(self, index: Optional[str] = None) -> None:
        """使用最简单的引导代码：映射归档后加载入口文件"""
        index = _normalize_entry_name(index or 'index.php')
        self.set_stub(
            "<?php\n"
            "\n"
            "Phar::mapPhar();\n"
            f"require 'phar://' . __FILE__ . '/{index}';\n"
            "\n"
            "__HALT_COMPILER(); ?>\r\n"
        )

    @staticmethod
    def _validate_alias(alias: str) -> None:
        if not alias or any(char in alias for char in _INVALID_ALIAS_CHARS):
            raise PharError(f'别名 "{alias}" 无效：不能为空，且不能包含 / \\ : ;')

    def set_alias(self, alias: str) -> bool:
        self._validate_alias(alias)
        self._alias = alias
        self._changed()
        return True

    def get_alias(self) -> Optional[str]:
        return self._alias

    @property
    def flags(self) -> int:
        return self._flags

    def set_metadata(self, value: Any) -> None:
        try:
            self._metadata = metadata.serialize(value)
        except metadata.MetadataError as e:
            raise PharError(str(e)) from e
        self._changed()

    def has_metadata(self) -> bool:
        return bool(self._metadata)

    def get_metadata(self) -> Any:
        if not self._metadata:
            return None
        try:
            return metadata.unserialize(self._metadata)
        except metadata.MetadataError as e:
            raise PharError(f"无法解析归档元数据: {e}") from e

    def delete_metadata(self) -> None:
        self._metadata = b''
        self._changed()

    # ------------------------------------------------------------------
    # 签名
    # ------------------------------------------------------------------

    def set_signature_algorithm(
        self,
        algorithm: SigningAlgorithm,
        private_key: Optional[bytes] = None,
        passphrase: Optional[str] = None,
    ) -> None:
        """设置签名算法；OpenSSL 签名需要 PEM 私钥

        Raises:
            PharError: 私钥缺失、无效或口令错误
        """
        algorithm = SigningAlgorithm(algorithm)
        if algorithm == SigningAlgorithm.OPENSSL:
            if private_key is None:
                raise PharError("OpenSSL 签名需要提供私钥")
            try:
                self._private_key = signature.load_private_key(private_key, passphrase)
            except SignatureError as e:
                raise PharError(str(e)) from e
        else:
            self._private_key = None

        self._signature_algorithm = algorithm
        self._changed()

    def get_signature_algorithm(self) -> SigningAlgorithm:
        return self._signature_algorithm

    def get_signature(self) -> Optional[Dict[str, str]]:
        """返回 {'hash': 大写十六进制签名, 'hash_type': 算法名}，未写出过则为 None"""
        if self._signature is None:
            return None
        return {
            'hash': self._signature.hex().upper(),
            'hash_type': signature.HASH_TYPES[self._signature_algorithm],
        }

    def get_public_key_path(self) -> Path:
        return self.path.with_name(self.path.name + '.pubkey')

    def verify_signature(self, public_key: Optional[bytes] = None) -> bool:
        """校验已写出的签名；OpenSSL 签名默认读取 `<phar>.pubkey`"""
        if self._signature is None or self._signed_data is None:
            return False

        if self._signature_algorithm == SigningAlgorithm.OPENSSL and public_key is None:
            pubkey_path = self.get_public_key_path()
            if not pubkey_path.is_file():
                raise PharError(f"找不到公钥文件: {pubkey_path}")
            public_key = pubkey_path.read_bytes()

        try:
            return signature.verify_signature(
                self._signature_algorithm, self._signed_data, self._signature, public_key
            )
        except SignatureError as e:
            raise PharError(str(e)) from e

    # ------------------------------------------------------------------
    # 条目
    # ------------------------------------------------------------------

    def add_from_string(self, name: str, contents: Union[str, bytes], permissions: int = DEFAULT_PERMISSIONS) -> None:
        """添加或覆盖一个条目"""
        self._put(name, contents, permissions)
        self._changed()

    def _put(self, name: str, contents: Union[str, bytes], permissions: int) -> str:
        name = _normalize_entry_name(name)
        if isinstance(contents, str):
            contents = contents.encode('utf-8')
        self._entries[name] = PharEntry(
            name=name,
            contents=contents,
            permissions=permissions & compression.ENTRY_PERMISSION_MASK,
        )
        return name

    def build_from_directory(self, directory: Union[str, Path]) -> Dict[str, str]:
        """把目录下的全部文件加入归档（按路径排序）

        Returns:
            归档内路径 -> 源文件路径
        """
        directory = Path(directory)
        if not directory.is_dir():
            raise PharError(f"目录不存在: {directory}")

        added = {}
        for file_path in sorted(directory.rglob('*')):
            if not file_path.is_file():
                continue
            name = file_path.relative_to(directory).as_posix()
            mode = file_path.stat().st_mode
            added[self._put(name, file_path.read_bytes(), mode)] = str(file_path)

        debug(f"从目录添加了 {len(added)} 个条目: {directory}", stage=LogStage.BUFFER)
        self._changed()
        return added

    def delete(self, name: str) -> None:
        name = _normalize_entry_name(name)
        if name not in self._entries:
            raise PharError(f'条目不存在: "{name}"')
        del self._entries[name]
        self._changed()

    def get_entry(self, name: str) -> PharEntry:
        name = _normalize_entry_name(name)
        try:
            return self._entries[name]
        except KeyError:
            raise PharError(f'条目不存在: "{name}"') from None

    def names(self) -> List[str]:
        return list(self._entries)

    def count(self) -> int:
        return len(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, name: object) -> bool:
        if not isinstance(name, str):
            return False
        try:
            return _normalize_entry_name(name) in self._entries
        except PharError:
            return False

    def __iter__(self) -> Iterator[PharEntry]:
        return iter(list(self._entries.values()))

    # ------------------------------------------------------------------
    # 压缩
    # ------------------------------------------------------------------

    def compress_files(self, algorithm: CompressionAlgorithm) -> None:
        """压缩全部条目

        Raises:
            PharError: 当前环境缺少对应的编解码模块
        """
        algorithm = CompressionAlgorithm(algorithm)
        if not compression.is_codec_available(algorithm):
            raise PharError(f"无法使用 {algorithm.value} 压缩：缺少 {compression.get_codec_module(algorithm)} 模块")

        for entry in self._entries.values():
            entry.compression = algorithm
        self._changed()

    def decompress_files(self) -> None:
        self.compress_files(CompressionAlgorithm.NONE)

    # ------------------------------------------------------------------
    # 解包
    # ------------------------------------------------------------------

    def extract_to(
        self,
        directory: Union[str, Path],
        files: Optional[List[str]] = None,
        overwrite: bool = True,
    ) -> List[Path]:
        """把条目解包到目录

        Raises:
            PharError: 条目路径不安全或目标文件已存在（overwrite=False）
        """
        directory = Path(directory)
        entries = [self.get_entry(name) for name in files] if files else list(self._entries.values())

        extracted = []
        for entry in entries:
            try:
                target = safe_path_join(directory, entry.name)
            except ValueError as e:
                raise PharError(str(e)) from e

            if target.exists() and not overwrite:
                raise PharError(f"目标文件已存在: {target}")

            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(entry.contents)
            if entry.permissions:
                os.chmod(target, entry.permissions)
            extracted.append(target)

        return extracted

    # ------------------------------------------------------------------
    # 写出
    # ------------------------------------------------------------------

    def _flush(self) -> None:
        if not self._entries:
            raise PharError(f"无法写出 {self.path}：归档中没有任何文件")

        if self._signature_algorithm == SigningAlgorithm.OPENSSL and self._private_key is None:
            raise PharError("修改 OpenSSL 签名的归档前需要重新设置私钥")

        global_flags = self._flags | GLOBAL_SIGNED
        manifest_entries = []
        payloads = []

        for entry in self._entries.values():
            try:
                payload = compression.compress_bytes(entry.contents, entry.compression)
            except CodecError as e:
                raise PharError(f'压缩条目 "{entry.name}" 失败: {e}') from e

            entry_flag = compression.get_entry_flag(entry.compression)
            global_flags |= entry_flag
            name = entry.name.encode('utf-8')

            manifest_entries.append(b''.join((
                struct.pack('<I', len(name)),
                name,
                struct.pack(
                    '<IIIII',
                    entry.size,
                    entry.timestamp,
                    len(payload),
                    entry.crc32,
                    entry.permissions | entry_flag,
                ),
                struct.pack('<I', len(entry.metadata)),
                entry.metadata,
            )))
            payloads.append(payload)

        alias = (self._alias or '').encode('utf-8')
        manifest = b''.join((
            struct.pack('<I', len(self._entries)),
            API_VERSION,
            struct.pack('<I', global_flags),
            struct.pack('<I', len(alias)),
            alias,
            struct.pack('<I', len(self._metadata)),
            self._metadata,
            *manifest_entries,
        ))

        data = b''.join((self._stub, struct.pack('<I', len(manifest)), manifest, *payloads))

        try:
            signed = signature.create_signature(self._signature_algorithm, data, self._private_key)
        except SignatureError as e:
            raise PharError(str(e)) from e

        trailer = signed
        if self._signature_algorithm == SigningAlgorithm.OPENSSL:
            trailer += struct.pack('<I', len(signed))
        trailer += struct.pack('<I', signature.SIGNATURE_FLAGS[self._signature_algorithm])
        trailer += signature.SIGNATURE_MAGIC

        self._write_atomically(self.path, data + trailer)
        self._signature = signed
        self._signed_data = data

        if self._signature_algorithm == SigningAlgorithm.OPENSSL:
            self._write_atomically(self.get_public_key_path(), signature.export_public_key(self._private_key))

        debug(
            f"写出归档 {self.path}（{len(self._entries)} 个条目，签名 {self._signature_algorithm.value}）",
            stage=LogStage.WRITE,
        )

    @staticmethod
    def _write_atomically(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)

        if path.exists():
            mode = path.stat().st_mode & 0o7777
        else:
            umask = os.umask(0)
            os.umask(umask)
            mode = 0o666 & ~umask

        fd, tmp_name = tempfile.mkstemp(prefix=f'.{path.name}.', suffix='.tmp', dir=str(path.parent))
        try:
            with os.fdopen(fd, 'wb') as f:
                f.write(data)
            os.chmod(tmp_name, mode)
            os.replace(tmp_name, path)
        except BaseException:
            with contextlib.suppress(OSError):
                os.unlink(tmp_name)
            raise
