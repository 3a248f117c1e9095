"""
路径工具

提供路径处理和文件读写相关的工具函数。
"""

import os
import shutil
import tempfile
from pathlib import Path, PurePosixPath
from typing import Union


def ensure_directory(path: Union[str, Path]) -> Path:
    """确保目录存在

    Raises:
        IOError: 目录无法创建
    """
    dir_path = Path(path)
    try:
        dir_path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise IOError(f"无法创建目录 {dir_path}: {e}") from e
    return dir_path


def make_tmp_dir(prefix: str = "pharpack_") -> Path:
    """创建一个新的临时目录"""
    return Path(tempfile.mkdtemp(prefix=prefix))


def remove(path: Union[str, Path]) -> None:
    """删除文件或目录（不存在时忽略）"""
    target = Path(path)
    if target.is_dir() and not target.is_symlink():
        shutil.rmtree(target, ignore_errors=True)
    elif target.exists() or target.is_symlink():
        target.unlink()


def file_contents(path: Union[str, Path]) -> bytes:
    """读取文件的全部内容

    Raises:
        IOError: 文件不存在或不可读
    """
    try:
        with open(path, 'rb') as f:
            return f.read()
    except OSError as e:
        raise IOError(f"读取文件失败 {path}: {e}") from e


def dump_file(path: Union[str, Path], contents: Union[bytes, str]) -> None:
    """写入文件，必要时创建父目录"""
    target = Path(path)
    ensure_directory(target.parent)
    if isinstance(contents, str):
        contents = contents.encode('utf-8')
    try:
        target.write_bytes(contents)
    except OSError as e:
        raise IOError(f"写入文件失败 {target}: {e}") from e


def normalize_path(path: Union[str, Path]) -> str:
    """统一使用正斜杠并去掉多余的 ./ 片段"""
    normalized = os.path.normpath(str(path)).replace('\\', '/')
    return '' if normalized == '.' else normalized


def make_path_relative(path: Union[str, Path], base_path: Union[str, Path]) -> str:
    """计算相对于 base_path 的 POSIX 风格路径

    相对路径视为已经相对于 base_path。
    """
    if not os.path.isabs(str(path)):
        return normalize_path(path)
    return normalize_path(os.path.relpath(str(path), str(base_path)))


def safe_path_join(*parts: Union[str, Path]) -> Path:
    """安全的路径拼接（防止目录穿越）

    Raises:
        ValueError: 检测到目录穿越尝试
    """
    if not parts:
        return Path(".")

    result = Path(parts[0])

    for part in parts[1:]:
        part_path = PurePosixPath(str(part).replace('\\', '/'))

        if any(p == ".." for p in part_path.parts):
            raise ValueError(f"检测到目录穿越尝试: {part}")

        if part_path.is_absolute():
            raise ValueError(f"不允许使用绝对路径: {part}")

        result = result / part_path

    return result


def format_size(size_bytes: int) -> str:
    """格式化文件大小"""
    if size_bytes == 0:
        return "0 B"

    units = ["B", "KB", "MB", "GB", "TB"]
    unit_index = 0
    size = float(size_bytes)

    while size >= 1024.0 and unit_index < len(units) - 1:
        size /= 1024.0
        unit_index += 1

    if unit_index == 0:
        return f"{int(size)} {units[unit_index]}"
    return f"{size:.1f} {units[unit_index]}"


def format_time(seconds: float) -> str:
    """格式化耗时"""
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    if seconds < 60:
        return f"{seconds:.2f}s"
    minutes, remainder = divmod(seconds, 60)
    return f"{int(minutes)}min {remainder:.0f}s"
