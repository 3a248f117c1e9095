"""
文件收集器

根据配置收集需要打包的文件，支持 glob 模式排除。
未配置任何输入时自动发现 base_path 下的全部文件；
开启 composer.exclude_dev_files 时跳过 dev 依赖包。
"""

import fnmatch
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Set

from ..config.loader import DEFAULT_CONFIG_FILES
from ..config.schema import InputPathModel, PharpackConfig
from ..utils.logging import debug, warning, LogStage
from ..utils.paths import make_path_relative

# 自动发现时总是跳过的目录
IGNORED_DIRECTORIES = ('.git', '.svn', '.hg', '.idea', '.box_dump')


@dataclass
class FileInfo:
    """文件信息"""
    path: Path  # 绝对路径
    relative_path: str  # 相对于 base_path 的 POSIX 路径
    size: int  # 文件大小（字节）
    mtime: float  # 修改时间（时间戳）


@dataclass
class CollectedFiles:
    """收集结果"""
    files: List[FileInfo] = field(default_factory=list)
    binary_files: List[FileInfo] = field(default_factory=list)
    autodiscovered: bool = False

    @property
    def total_size(self) -> int:
        return sum(f.size for f in self.files) + sum(f.size for f in self.binary_files)


class FileCollector:
    """文件收集器

    负责扫描和收集需要打包的文件，应用排除规则。
    """

    def __init__(self, base_path: Path, exclude_patterns: Optional[List[str]] = None):
        self.base_path = Path(base_path)
        self.excluded_patterns: List[str] = [p.replace('\\', '/') for p in exclude_patterns or []]
        self.excluded_files: Set[Path] = set()
        self.excluded_directories: Set[Path] = set()

    def exclude_file(self, path: Optional[Path]) -> None:
        if path is not None:
            self.excluded_files.add(Path(path).resolve())

    def exclude_directory(self, path: Path) -> None:
        self.excluded_directories.add(Path(path).resolve())

    def collect_files(self, inputs: Iterable[InputPathModel]) -> List[FileInfo]:
        """收集文件

        Raises:
            FileNotFoundError: 输入路径不存在
            ValueError: 输入路径既不是文件也不是目录
        """
        collected: List[FileInfo] = []
        added_files: Set[Path] = set()

        for input_config in inputs:
            input_path = Path(input_config.path)
            if not input_path.is_absolute():
                input_path = self.base_path / input_path

            if not input_path.exists():
                raise FileNotFoundError(f"输入路径不存在: {input_path}")

            if input_path.is_file():
                candidates: Iterable[Path] = [input_path]
            elif input_path.is_dir():
                candidates = self._walk_directory(input_path, input_config.recursive)
            else:
                raise ValueError(f"输入路径既不是文件也不是目录: {input_path}")

            for file_path in candidates:
                file_info = self._create_file_info(file_path)
                if file_info is None or file_info.path in added_files:
                    continue
                if self._is_excluded(file_info):
                    continue
                collected.append(file_info)
                added_files.add(file_info.path)

        # 按相对路径排序，确保输出一致性
        collected.sort(key=lambda f: f.relative_path)
        return collected

    def _walk_directory(self, directory: Path, recursive: bool = True) -> Iterator[Path]:
        try:
            items = sorted(directory.iterdir())
        except OSError as e:
            warning(f"无法读取目录 {directory}: {e}", stage=LogStage.COLLECT)
            return

        for item in items:
            if item.is_dir():
                if not recursive or item.name in IGNORED_DIRECTORIES:
                    continue
                if item.resolve() in self.excluded_directories:
                    debug(f"跳过目录: {item}", stage=LogStage.COLLECT)
                    continue
                yield from self._walk_directory(item, recursive)
            elif item.is_file():
                yield item

    def _create_file_info(self, file_path: Path) -> Optional[FileInfo]:
        try:
            stat = file_path.stat()
        except OSError:
            # 忽略无法访问的文件（如损坏的符号链接）
            return None

        return FileInfo(
            path=file_path.resolve(),
            relative_path=make_path_relative(file_path.resolve(), self.base_path.resolve()),
            size=stat.st_size,
            mtime=stat.st_mtime,
        )

    def _is_excluded(self, file_info: FileInfo) -> bool:
        if file_info.path in self.excluded_files:
            return True

        return any(self._match_pattern(file_info.relative_path, pattern) for pattern in self.excluded_patterns)

    def _match_pattern(self, path: str, pattern: str) -> bool:
        """匹配单个模式"""
        # 直接 glob 匹配
        if fnmatch.fnmatch(path, pattern):
            return True

        # 目录模式匹配（以 / 结尾）
        if pattern.endswith('/'):
            dir_pattern = pattern.rstrip('/')
            if fnmatch.fnmatch(path, dir_pattern) or path.startswith(dir_pattern + '/'):
                return True

        # 扩展名匹配（以 * 开头）
        if pattern.startswith('*.') and path.endswith(pattern[1:]):
            return True

        # 路径片段匹配（包含路径分隔符）
        if '/' in pattern:
            path_parts = path.split('/')
            pattern_parts = pattern.strip('/').split('/')

            for i in range(len(path_parts) - len(pattern_parts) + 1):
                if all(
                    fnmatch.fnmatch(path_parts[i + j], pattern_parts[j])
                    for j in range(len(pattern_parts))
                ):
                    return True
        # 单一片段匹配任意一级目录
        elif any(fnmatch.fnmatch(part, pattern) for part in path.split('/')[:-1]):
            return True

        return False


def retrieve_dev_package_paths(config: PharpackConfig) -> List[Path]:
    """从 vendor/composer/installed.json 读取 dev 依赖包的安装目录"""
    installed_json = config.base_path / config.get_vendor_dir() / 'composer' / 'installed.json'
    if not installed_json.is_file():
        return []

    with open(installed_json, 'r', encoding='utf-8') as f:
        installed: Dict = json.load(f)

    # Composer 1 的 installed.json 是包列表，没有 dev 信息
    if not isinstance(installed, dict):
        return []

    dev_names = set(installed.get('dev-package-names', []))
    paths = []
    for package in installed.get('packages', []):
        if package.get('name') not in dev_names:
            continue
        install_path = package.get('install-path')
        if install_path:
            paths.append((installed_json.parent / install_path).resolve())
        else:
            paths.append((config.base_path / config.get_vendor_dir() / package['name']).resolve())
    return paths


def collect_files(config: PharpackConfig, config_path: Optional[Path] = None) -> CollectedFiles:
    """按配置收集普通文件和二进制文件

    入口脚本、输出文件、stub、横幅文件、私钥和配置文件本身不会被收集。
    """
    base_path = config.base_path
    collector = FileCollector(base_path, config.exclude)

    output = config.get_output_path()
    for path in (
        config.get_main_script_path(),
        output,
        config.get_tmp_output_path(),
        output.with_name(output.name + '.pubkey'),
        config.get_stub_path(),
        config.get_stub_banner_path(),
        config.get_private_key_path(),
        config_path,
    ):
        collector.exclude_file(path)

    for name in DEFAULT_CONFIG_FILES:
        collector.exclude_file(base_path / name)

    if config.composer.exclude_dev_files and config.get_decoded_composer_json() is not None:
        for dev_path in retrieve_dev_package_paths(config):
            debug(f"排除 dev 依赖: {dev_path}", stage=LogStage.COLLECT)
            collector.exclude_directory(dev_path)

    result = CollectedFiles()
    text_inputs = [i for i in config.inputs if not i.binary]
    binary_inputs = [i for i in config.inputs if i.binary]

    if not config.inputs:
        result.autodiscovered = True
        text_inputs = [InputPathModel(path=base_path)]

    result.files = collector.collect_files(text_inputs)
    result.binary_files = collector.collect_files(binary_inputs)

    return result
