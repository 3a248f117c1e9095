"""
运行环境检查器

根据 composer.json / composer.lock 和压缩算法计算运行归档所需的 PHP 版本和扩展，
生成放在归档 `.box/` 目录下的检查脚本和需求列表。
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from ..config.schema import CompressionAlgorithm
from ..phar.compression import get_required_extension
from .package_info import PackageInfo, parse_extensions

REQUIREMENTS_CONFIG = '.requirements.php'
CHECKER_SCRIPT = 'bin/check-requirements.php'

_LOWER_BOUND = re.compile(r'(\^|~|>=|>|==?|<=|<|!=)?\s*v?(\d+(?:\.\d+){0,2})')

CHECKER_SOURCE = r"""<?php

/*
 * Generated by pharpack: checks that the runtime satisfies the requirements
 * of the application before loading it.
 */

if ('0' === getenv('PHARPACK_REQUIREMENT_CHECKER')) {
    return;
}

$requirements = require dirname(__DIR__).'/.requirements.php';
$errors = array();

foreach ($requirements as $requirement) {
    switch ($requirement['type']) {
        case 'php':
            $satisfied = version_compare(PHP_VERSION, $requirement['condition'], '>=');
            break;
        case 'extension':
            $satisfied = extension_loaded($requirement['condition']);
            break;
        case 'extension-conflict':
            $satisfied = !extension_loaded($requirement['condition']);
            break;
        default:
            $satisfied = true;
    }

    if (!$satisfied) {
        $errors[] = $requirement;
    }
}

if (array() === $errors) {
    return;
}

fwrite(STDERR, PHP_EOL.'pharpack requirements checker'.PHP_EOL.'============================='.PHP_EOL.PHP_EOL);

foreach ($errors as $error) {
    fwrite(STDERR, '  [ERROR] '.$error['message'].PHP_EOL);
    fwrite(STDERR, '          '.$error['helpMessage'].PHP_EOL.PHP_EOL);
}

fwrite(STDERR, 'Set PHARPACK_REQUIREMENT_CHECKER=0 to skip this check.'.PHP_EOL);

exit(1);
"""


@dataclass(frozen=True)
class Requirement:
    """单条运行环境需求"""
    type: str
    condition: str
    source: Optional[str]
    message: str
    help_message: str

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            'type': self.type,
            'condition': self.condition,
            'source': self.source,
            'message': self.message,
            'helpMessage': self.help_message,
        }


def _version_key(version: str) -> Tuple[int, ...]:
    return tuple(int(part) for part in version.split('.'))


def minimum_php_version(constraint: str) -> Optional[str]:
    """Composer 版本约束允许的最低版本；约束没有下限时返回 None"""
    minimums = []

    for alternative in re.split(r'\s*\|\|?\s*', constraint.strip()):
        bound = None
        for match in _LOWER_BOUND.finditer(alternative):
            operator = match.group(1) or ''
            if operator.startswith('<') or operator == '!=':
                continue
            bound = match.group(2)
            break

        if bound is None:
            return None
        minimums.append(bound)

    return min(minimums, key=_version_key) if minimums else None


def _php_requirement(constraint: str, source: Optional[str]) -> Optional[Requirement]:
    minimum = minimum_php_version(constraint)
    if minimum is None:
        return None

    if source is None:
        message = f'The application requires the version "{constraint}" or greater.'
    else:
        message = f'The package "{source}" requires the version "{constraint}" or greater.'

    return Requirement('php', minimum, source, message, message)


def _extension_requirement(extension: str, source: Optional[str]) -> Requirement:
    if source is None:
        message = f'The application requires the extension "{extension}".'
    else:
        message = f'The package "{source}" requires the extension "{extension}".'

    return Requirement('extension', extension, source, message, f'{message} Enable it or install a polyfill.')


def _conflict_requirement(extension: str, source: str) -> Requirement:
    message = f'The package "{source}" requires the extension "{extension}" to be disabled.'
    return Requirement('extension-conflict', extension, source, message, f'{message} Disable it to continue.')


def build_requirements(
    composer_json: Optional[Dict[str, Any]],
    composer_lock: Optional[Dict[str, Any]],
    compression: CompressionAlgorithm,
) -> List[Requirement]:
    """计算运行环境需求（已去重，保持出现顺序）"""
    composer_json = composer_json or {}
    composer_lock = composer_lock or {}
    root = PackageInfo(composer_json)
    packages = [PackageInfo(package) for package in composer_lock.get('packages', [])]

    requirements: List[Requirement] = []

    platform = composer_lock.get('platform') or {}
    root_php = platform.get('php') or root.get_required_php_version()
    if root_php:
        requirements.append(_php_requirement(root_php, None))

    for package in packages:
        if package.has_required_php_version():
            requirements.append(_php_requirement(package.get_required_php_version(), package.name))

    polyfilled = {package.get_polyfilled_extension() for package in packages} - {None}

    compression_extension = get_required_extension(compression)
    if compression_extension is not None:
        requirements.append(_extension_requirement(compression_extension, None))

    root_extensions = parse_extensions(platform) + root.get_required_extensions()
    for extension in root_extensions:
        if extension not in polyfilled:
            requirements.append(_extension_requirement(extension, None))

    for package in packages:
        for extension in package.get_required_extensions():
            if extension not in polyfilled:
                requirements.append(_extension_requirement(extension, package.name))

    for package in packages:
        for extension in package.get_conflicting_extensions():
            requirements.append(_conflict_requirement(extension, package.name))

    return list(dict.fromkeys(requirement for requirement in requirements if requirement is not None))


def _export_php(value: Any, indent: int = 0) -> str:
    """类似 PHP var_export() 的数组导出"""
    if value is None:
        return 'NULL'
    if isinstance(value, str):
        return "'" + value.replace('\\', '\\\\').replace("'", "\\'") + "'"
    if isinstance(value, list):
        value = dict(enumerate(value))
    if isinstance(value, dict):
        padding = '  ' * (indent + 1)
        lines = ['array (']
        for key, item in value.items():
            lines.append(f'{padding}{_export_php(key) if isinstance(key, str) else key} => {_export_php(item, indent + 1)},')
        lines.append('  ' * indent + ')')
        return '\n'.join(lines)
    return str(value)


class RequirementsDumper:
    """生成运行环境检查器的文件"""

    @classmethod
    def dump(
        cls,
        composer_json: Optional[Dict[str, Any]],
        composer_lock: Optional[Dict[str, Any]],
        compression: CompressionAlgorithm,
    ) -> List[Tuple[str, str]]:
        """返回 (相对 .box/ 的文件名, 内容) 列表"""
        requirements = build_requirements(composer_json, composer_lock, compression)
        config = '<?php\n\nreturn ' + _export_php([r.to_dict() for r in requirements]) + ';\n'

        return [
            (REQUIREMENTS_CONFIG, config),
            (CHECKER_SCRIPT, CHECKER_SOURCE),
        ]
