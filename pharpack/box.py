"""
归档构建器

Box 持有目标 PHAR，提供缓冲会话：会话期间文件经过路径映射和压缩器链后暂存在内存中，
结束缓冲时写入临时目录、运行自动加载生成回调，再整体构建进归档。
之后可以删除 Composer 文件、压缩和签名。

状态机: Idle --start_buffering--> Buffering --end_buffering--> Idle
"""

import errno
import math
import os
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from .compactor import Compactors, NullScoper, Placeholder, Scoper, SymbolsRegistry
from .map_file import MapFile
from .parallel import ParallelProcessor, ProcessorContext, process_file
from .phar import (
    OPENSSL_AVAILABLE,
    CompressionAlgorithm,
    Phar,
    PharError,
    SigningAlgorithm,
    get_required_extension,
    is_codec_available,
)
from .phar.compression import get_codec_module
from .utils.logging import debug, LogStage
from .utils.paths import dump_file, ensure_directory, file_contents, make_tmp_dir, remove, safe_path_join

EMPTY_ARCHIVE_FILE = '.box_empty'
EMPTY_ARCHIVE_MESSAGE = 'A PHAR cannot be empty so pharpack adds this file to ensure the PHAR is created still.'

AutoloadDumper = Callable[[SymbolsRegistry, str], None]


class BoxError(Exception):
    """归档构建错误基类"""
    pass


class BufferingStateError(BoxError):
    """缓冲会话的调用顺序错误"""
    pass


class UnsupportedFeatureError(BoxError):
    """当前环境缺少所需能力（压缩模块、签名库）"""
    pass


class CompressionFailure(BoxError):
    """压缩失败"""
    pass


class SigningError(BoxError):
    """签名失败"""
    pass


def _decode(contents: Union[str, bytes]) -> str:
    if isinstance(contents, bytes):
        return contents.decode('utf-8', errors='surrogateescape')
    return contents


def _encode(contents: Union[str, bytes]) -> bytes:
    if isinstance(contents, str):
        return contents.encode('utf-8', errors='surrogateescape')
    return contents


def _stringify_float(value: float) -> str:
    # 与 PHP 的 (string) 转换一致：1.0 -> "1"
    if math.isnan(value):
        return 'NAN'
    if math.isinf(value):
        return 'INF' if value > 0 else '-INF'
    if value.is_integer() and abs(value) < 1e15:
        return str(int(value))
    return repr(value)


def _stringify_placeholder(value: Any) -> str:
    if isinstance(value, bool):
        return '1' if value else ''
    if isinstance(value, float):
        return _stringify_float(value)
    if isinstance(value, (str, int)):
        return str(value)
    if value is not None and type(value).__str__ is not object.__str__:
        return str(value)
    raise ValueError(f'Expected value "{value!r}" to be a scalar or stringable object.')


class Box:
    """PHAR 归档构建器

    Args:
        phar: 目标归档
        phar_path: 归档路径（公钥文件写在旁边）
        parallel_processing: 是否允许并行处理文件
    """

    def __init__(self, phar: Phar, phar_path: Union[str, Path], parallel_processing: bool = True):
        self._phar = phar
        self._phar_path = Path(phar_path)
        self._compactors = Compactors()
        self._placeholder_compactor = Placeholder({})
        self._map_file = MapFile(os.getcwd())
        self._scoper: Scoper = NullScoper()
        self._buffering = False
        self._buffered_files: Dict[str, bytes] = {}
        self.parallel_processing = parallel_processing

    @classmethod
    def create(
        cls,
        phar_path: Union[str, Path],
        flags: int = 0,
        alias: Optional[str] = None,
        parallel_processing: bool = True,
    ) -> 'Box':
        """创建归档；先确保父目录存在

        Raises:
            IOError: 父目录无法创建
        """
        phar_path = Path(phar_path)
        ensure_directory(phar_path.parent)
        return cls(Phar(phar_path, flags, alias), phar_path, parallel_processing)

    @classmethod
    def create_from_phar(cls, phar: Phar, parallel_processing: bool = True) -> 'Box':
        return cls(phar, phar.path, parallel_processing)

    @property
    def phar(self) -> Phar:
        return self._phar

    def is_buffering(self) -> bool:
        return self._buffering

    def get_scoper(self) -> Scoper:
        return self._scoper

    def get_buffered_files(self) -> Dict[str, bytes]:
        return dict(self._buffered_files)

    # ------------------------------------------------------------------
    # 缓冲会话
    # ------------------------------------------------------------------

    def _assert_buffering(self, message: str) -> None:
        if not self._buffering:
            raise BufferingStateError(message)

    def _assert_not_buffering(self, message: str) -> None:
        if self._buffering:
            raise BufferingStateError(message)

    def start_buffering(self) -> None:
        self._assert_not_buffering("必须先结束缓冲才能再次开始缓冲")
        self._buffering = True
        self._phar.start_buffering()

    def end_buffering(self, dump_autoload: Optional[AutoloadDumper] = None) -> None:
        """把暂存的文件写入归档

        暂存文件先写入临时目录；回调在该目录中以 (符号注册表, 前缀) 调用，
        之后从临时目录构建归档。无论成功与否临时目录都会被删除。
        """
        self._assert_buffering("必须先开始缓冲才能结束缓冲")

        if not self._buffered_files:
            self._buffered_files = {EMPTY_ARCHIVE_FILE: EMPTY_ARCHIVE_MESSAGE.encode('utf-8')}

        cwd = os.getcwd()
        tmp = make_tmp_dir(prefix='pharpack_box_')
        debug(f"写出 {len(self._buffered_files)} 个暂存文件到 {tmp}", stage=LogStage.BUFFER)

        try:
            for local, contents in self._buffered_files.items():
                try:
                    target = safe_path_join(tmp, local)
                except ValueError as e:
                    raise BoxError(f'文件 "{local}" 映射到了归档之外: {e}') from e
                dump_file(target, contents)

            if dump_autoload is not None:
                os.chdir(tmp)
                try:
                    dump_autoload(self._scoper.get_symbols_registry(), self._scoper.get_prefix())
                finally:
                    os.chdir(cwd)

            self._phar.build_from_directory(tmp)
        finally:
            remove(tmp)

        self._buffered_files = {}
        self._buffering = False
        self._phar.stop_buffering()

    # ------------------------------------------------------------------
    # 添加文件
    # ------------------------------------------------------------------

    def add_file(self, file: Union[str, Path], contents: Union[str, bytes, None] = None, binary: bool = False) -> str:
        """添加单个文件，返回归档内路径

        二进制文件跳过压缩器链原样保存；同一归档内路径后写入的覆盖先写入的。
        """
        self._assert_buffering("开始缓冲之后才能添加文件")

        if contents is None:
            contents = file_contents(file)

        local = self._map_file(str(file))

        if binary:
            self._buffered_files[local] = _encode(contents)
        else:
            self._buffered_files[local] = _encode(self._compactors.compact(local, _decode(contents)))

        return local

    def add_files(self, files: Iterable[Union[str, Path]], binary: bool) -> None:
        """批量添加文件

        Raises:
            CompositeError: 并行处理时有文件处理失败，整批都不会被暂存
        """
        self._assert_buffering("开始缓冲之后才能添加文件")

        files = [str(file) for file in files]

        if binary:
            for file in files:
                self.add_file(file, binary=True)
            return

        for local, contents in self._process_contents(files):
            self._buffered_files[local] = _encode(contents)

    def _process_contents(self, files: List[str]) -> List[Tuple[str, str]]:
        context = ProcessorContext(cwd=os.getcwd(), map_file=self._map_file, compactors=self._compactors)

        # 只有带前缀的压缩器才值得并行
        if self._compactors.get_scoper() is None or not self.parallel_processing:
            return [(local, contents) for local, contents, _ in (process_file(context, file) for file in files)]

        processed, registry = ParallelProcessor(context).process(files)

        # 工作进程中的注册表是副本，需要合并回来
        if processed:
            self._compactors.register_symbols_registry(registry)

        return processed

    # ------------------------------------------------------------------
    # 注册
    # ------------------------------------------------------------------

    def register_compactors(self, compactors: Compactors) -> None:
        """替换压缩器链；占位符压缩器总是排在第一位"""
        chain = [compactor for compactor in compactors if compactor.as_placeholder() is None]
        self._compactors = Compactors(self._placeholder_compactor, *chain)
        # 与压缩器链一致，使用第一个前缀器
        self._scoper = self._compactors.get_scoper() or NullScoper()

    def register_placeholders(self, placeholders: Dict[str, Any]) -> None:
        """设置占位符

        Raises:
            ValueError: 值既不是标量也不能转换为字符串
        """
        converted = {key: _stringify_placeholder(value) for key, value in placeholders.items()}
        self._placeholder_compactor = Placeholder(converted)
        self.register_compactors(self._compactors)

    def register_file_mapping(self, map_file: MapFile) -> None:
        self._map_file = map_file

    def register_stub(self, file: Union[str, Path]) -> None:
        """使用文件作为 stub（会先替换占位符）"""
        contents = self._placeholder_compactor.compact(str(file), _decode(file_contents(file)))
        self._phar.set_stub(_encode(contents))

    # ------------------------------------------------------------------
    # 归档操作
    # ------------------------------------------------------------------

    def remove_composer_artefacts(self, vendor_dir: str) -> None:
        """删除 composer.json、composer.lock 和 installed.json

        Args:
            vendor_dir: vendor 目录（正斜杠、无结尾斜杠）
        """
        self._assert_not_buffering("必须结束缓冲之后才能删除 Composer 文件")

        composer_files = [
            'composer.json',
            'composer.lock',
            f'{vendor_dir}/composer/installed.json',
        ]

        self._phar.start_buffering()

        for composer_file in composer_files:
            local = self._map_file(composer_file)
            if local in self._phar:
                debug(f"删除 Composer 文件: {local}", stage=LogStage.COMPOSER)
                self._phar.delete(local)

        self._phar.stop_buffering()

    def compress(self, algorithm: CompressionAlgorithm) -> Optional[str]:
        """压缩归档全部条目，NONE 表示解压

        Returns:
            运行压缩后的归档所需的 PHP 扩展，不需要时为 None

        Raises:
            UnsupportedFeatureError: 缺少压缩模块
            CompressionFailure: 压缩失败
        """
        self._assert_not_buffering("缓冲期间不能压缩文件")

        algorithm = CompressionAlgorithm(algorithm)
        extension_required = get_required_extension(algorithm)

        if not is_codec_available(algorithm):
            raise UnsupportedFeatureError(
                f'无法使用 "{algorithm.name}" 压缩 PHAR：需要 "{get_codec_module(algorithm)}" 模块，但当前环境不可用'
            )

        try:
            if algorithm == CompressionAlgorithm.NONE:
                self._phar.decompress_files()
            else:
                self._phar.compress_files(algorithm)
        except OSError as e:
            if e.errno in (errno.EMFILE, errno.ENFILE):
                raise CompressionFailure(
                    f"无法压缩 PHAR：压缩需要打开过多的文件描述符（{self._phar.count()}）。"
                    "请检查系统的打开文件数限制 (ulimit -n)"
                ) from e
            raise CompressionFailure(f"无法压缩 PHAR: {e}") from e
        except PharError as e:
            raise CompressionFailure(f"无法压缩 PHAR: {e}") from e

        return extension_required

    def sign_using_file(self, file: Union[str, Path], password: Optional[str] = None) -> None:
        """使用私钥文件签名"""
        self.sign(file_contents(file), password)

    def sign(self, key: Union[str, bytes], password: Optional[str] = None) -> None:
        """使用 OpenSSL 私钥签名，并在归档旁边写出公钥文件

        Raises:
            UnsupportedFeatureError: 缺少 cryptography 库
            SigningError: 私钥或口令无效，或公钥路径已被非文件占用
        """
        if not OPENSSL_AVAILABLE:
            raise UnsupportedFeatureError("OpenSSL 签名需要安装 cryptography 库")

        pubkey = self._phar_path.with_name(self._phar_path.name + '.pubkey')

        if pubkey.exists() and not pubkey.is_file():
            raise SigningError(f"无法创建公钥：{pubkey} 已存在且不是文件")

        if not os.access(pubkey.parent, os.W_OK):
            raise SigningError(f"无法创建公钥：目录 {pubkey.parent} 不可写")

        try:
            self._phar.set_signature_algorithm(SigningAlgorithm.OPENSSL, _encode(key), password)
        except PharError as e:
            raise SigningError(f"无法读取私钥，请检查口令是否正确: {e}") from e

        debug(f"已写出公钥: {pubkey}", stage=LogStage.SIGN)

    def count(self) -> int:
        self._assert_not_buffering("缓冲期间不能统计归档中的文件数")
        return self._phar.count()

    def __len__(self) -> int:
        return self.count()
