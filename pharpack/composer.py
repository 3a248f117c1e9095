"""
Composer 协作

- 检查 Composer 版本
- 在暂存目录中重新生成自动加载（classmap-authoritative）
- 加前缀后为暴露的全局类和函数生成 scoper-autoload.php
"""

import json
import re
import shutil
import subprocess
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .compactor.symbols import SymbolsRegistry
from .utils.logging import debug, info, LogStage
from .utils.paths import dump_file, file_contents

MINIMUM_COMPOSER_VERSION = '2.3.0'
SCOPER_AUTOLOAD_FILE = 'scoper-autoload.php'

_VERSION_REGEX = re.compile(r'Composer (?:version )?(?P<version>\d+\.\d+\.\d+\S*)')
_AUTOLOAD_RETURN_REGEX = re.compile(r'^return (?P<loader>ComposerAutoloaderInit\w+::getLoader\(\));\s*$', re.MULTILINE)


class ComposerError(Exception):
    """Composer 调用失败"""
    pass


class IncompatibleComposerVersion(ComposerError):
    """Composer 版本过低"""
    pass


def retrieve_vendor_dir(composer_json: Optional[Dict[str, Any]]) -> str:
    """vendor 目录（正斜杠、无结尾斜杠）"""
    vendor_dir = ((composer_json or {}).get('config') or {}).get('vendor-dir', 'vendor')
    return str(vendor_dir).replace('\\', '/').rstrip('/')


def _version_key(version: str) -> Tuple[int, ...]:
    return tuple(int(part) for part in re.findall(r'\d+', version)[:3])


def find_composer_bin(composer_bin: Optional[str] = None) -> str:
    if composer_bin:
        return composer_bin

    found = shutil.which('composer') or shutil.which('composer.phar')
    if found is None:
        raise ComposerError("找不到 composer 可执行文件，请通过 composer.bin 配置其路径")
    return found


def _run_composer(args: List[str], composer_bin: Optional[str] = None, cwd: Optional[Path] = None) -> str:
    command = [find_composer_bin(composer_bin), *args, '--no-interaction', '--no-ansi']
    debug(f"执行: {' '.join(command)}", stage=LogStage.COMPOSER)

    try:
        result = subprocess.run(
            command,
            capture_output=True,
            text=True,
            cwd=str(cwd) if cwd is not None else None,
        )
    except OSError as e:
        raise ComposerError(f"无法执行 Composer: {e}") from e

    if result.returncode != 0:
        raise ComposerError(f"Composer 执行失败 ({' '.join(args)}): {result.stderr.strip() or result.stdout.strip()}")

    return result.stdout


def get_version(composer_bin: Optional[str] = None) -> str:
    output = _run_composer(['--version'], composer_bin)

    match = _VERSION_REGEX.search(output)
    if match is None:
        raise ComposerError(f"无法解析 Composer 版本: {output.strip()}")
    return match.group('version')


def check_version(composer_bin: Optional[str] = None) -> str:
    """检查 Composer 版本是否满足最低要求

    Raises:
        IncompatibleComposerVersion: 版本低于最低要求
    """
    version = get_version(composer_bin)

    if _version_key(version) < _version_key(MINIMUM_COMPOSER_VERSION):
        raise IncompatibleComposerVersion(
            f'当前 Composer 版本为 "{version}"，需要 "^{MINIMUM_COMPOSER_VERSION}" 或更高版本'
        )

    return version


def dump_autoload(
    symbols_registry: SymbolsRegistry,
    prefix: str,
    exclude_dev_files: bool,
    composer_bin: Optional[str] = None,
    working_dir: Optional[Path] = None,
) -> None:
    """在当前目录（暂存目录）中重新生成 Composer 自动加载"""
    working_dir = Path(working_dir or Path.cwd())

    args = ['dump-autoload', '--classmap-authoritative']
    if exclude_dev_files:
        args.append('--no-dev')

    info("生成 Composer 自动加载", stage=LogStage.COMPOSER)
    output = _run_composer(args, composer_bin, working_dir)
    if output.strip():
        debug(output.strip(), stage=LogStage.COMPOSER)

    if not prefix or symbols_registry.count() == 0:
        return

    composer_json_path = working_dir / 'composer.json'
    composer_json = json.loads(file_contents(composer_json_path)) if composer_json_path.is_file() else {}
    vendor_dir = working_dir / retrieve_vendor_dir(composer_json)

    dump_file(vendor_dir / SCOPER_AUTOLOAD_FILE, generate_scoper_autoload(symbols_registry))
    _include_scoper_autoload(vendor_dir / 'autoload.php')

    debug(
        f"为 {symbols_registry.count()} 个暴露的符号生成 {SCOPER_AUTOLOAD_FILE}",
        stage=LogStage.COMPOSER,
    )


def _php_string(value: str) -> str:
    return "'" + value.replace('\\', '\\\\').replace("'", "\\'") + "'"


def generate_scoper_autoload(symbols_registry: SymbolsRegistry) -> str:
    """为暴露的符号生成别名：类按需创建 class_alias，函数生成转发函数"""
    lines = [
        '<?php',
        '',
        '// Generated by pharpack: exposes the prefixed global symbols under their original names.',
        '',
    ]

    classes = symbols_registry.get_recorded_classes()
    if classes:
        lines.append('spl_autoload_register(static function ($class) {')
        lines.append('    static $aliases = array(')
        for original, prefixed in classes:
            lines.append(f'        {_php_string(original.lower())} => {_php_string(prefixed)},')
        lines.append('    );')
        lines.append('')
        lines.append('    $key = strtolower(ltrim($class, \'\\\\\'));')
        lines.append('')
        lines.append('    if (isset($aliases[$key])) {')
        lines.append('        class_alias($aliases[$key], $class);')
        lines.append('    }')
        lines.append('});')
        lines.append('')

    for original, prefixed in symbols_registry.get_recorded_functions():
        lines.append(f'if (!function_exists({_php_string(original)})) {{')
        lines.append(f'    function {original}(...$args) {{')
        lines.append(f'        return \\{prefixed}(...func_get_args());')
        lines.append('    }')
        lines.append('}')
        lines.append('')

    return '\n'.join(lines)


def _include_scoper_autoload(autoload_file: Path) -> None:
    """让 vendor/autoload.php 在返回 loader 前加载 scoper-autoload.php"""
    if not autoload_file.is_file():
        raise ComposerError(f"找不到 Composer 自动加载文件: {autoload_file}")

    contents = file_contents(autoload_file).decode('utf-8')
    replacement = (
        r'$loader = \g<loader>;' '\n\n'
        f"require_once __DIR__.'/{SCOPER_AUTOLOAD_FILE}';" '\n\n'
        'return $loader;\n'
    )
    patched, count = _AUTOLOAD_RETURN_REGEX.subn(replacement, contents, count=1)

    if count == 0:
        raise ComposerError(f"无法在 {autoload_file} 中找到 Composer loader 的返回语句")

    dump_file(autoload_file, patched)
