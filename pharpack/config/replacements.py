"""
占位符替换值

汇总配置中的静态替换值、编译时间和 git 信息。
"""

import subprocess
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .schema import PharpackConfig


class GitError(Exception):
    """git 信息获取失败"""
    pass


def _run_git(args: List[str], cwd: Path) -> str:
    try:
        result = subprocess.run(
            ['git', *args],
            cwd=str(cwd),
            capture_output=True,
            text=True,
            check=True,
        )
    except FileNotFoundError as e:
        raise GitError("未找到 git 可执行文件，无法解析 git 占位符") from e
    except subprocess.CalledProcessError as e:
        raise GitError(f"git {' '.join(args)} 执行失败: {e.stderr.strip()}") from e
    return result.stdout.strip()


def get_git_commit(cwd: Path, short: bool = False) -> str:
    return _run_git(['log', '--pretty=%h' if short else '--pretty=%H', '-n1', 'HEAD'], cwd)


def get_git_version(cwd: Path) -> str:
    """最近的 tag；HEAD 不在 tag 上时使用短提交哈希"""
    try:
        return _run_git(['describe', '--tags', '--exact-match', 'HEAD'], cwd)
    except GitError:
        return get_git_commit(cwd, short=True)


def get_replacements(config: PharpackConfig, now: Optional[datetime] = None) -> Dict[str, Any]:
    """计算全部占位符的替换值

    Raises:
        GitError: 配置了 git 占位符但无法获取 git 信息
    """
    settings = config.replacements
    values: Dict[str, Any] = dict(settings.values)

    if settings.datetime:
        now = now or datetime.now(timezone.utc)
        values[settings.datetime] = now.strftime(settings.datetime_format).strip()

    if settings.git_commit:
        values[settings.git_commit] = get_git_commit(config.base_path)

    if settings.git_commit_short:
        values[settings.git_commit_short] = get_git_commit(config.base_path, short=True)

    if settings.git_version:
        values[settings.git_version] = get_git_version(config.base_path)

    return values
