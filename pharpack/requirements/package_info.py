"""Composer 包信息"""

import re
from typing import Any, Dict, List, Optional

EXTENSION_REGEX = re.compile(r'^ext-(?P<extension>.+)$')
SYMFONY_POLYFILL_REGEX = re.compile(r'symfony/polyfill-(?P<extension>.+)')

POLYFILL_MAP = {
    'paragonie/sodium_compat': 'libsodium',
    'phpseclib/mcrypt_compat': 'mcrypt',
}


class PackageInfo:
    """composer.json / composer.lock 中单个包的信息"""

    def __init__(self, package_info: Dict[str, Any]):
        self._info = package_info

    @property
    def name(self) -> str:
        return self._info.get('name', '')

    def get_required_php_version(self) -> Optional[str]:
        return (self._info.get('require') or {}).get('php')

    def has_required_php_version(self) -> bool:
        return self.get_required_php_version() is not None

    def get_required_extensions(self) -> List[str]:
        return parse_extensions(self._info.get('require') or {})

    def get_conflicting_extensions(self) -> List[str]:
        return parse_extensions(self._info.get('conflict') or {})

    def get_polyfilled_extension(self) -> Optional[str]:
        """该包作为 polyfill 提供的扩展"""
        name = self.name

        if name in POLYFILL_MAP:
            return POLYFILL_MAP[name]

        match = SYMFONY_POLYFILL_REGEX.search(name)
        if match is None:
            return None

        extension = match.group('extension')
        return None if extension.startswith('php') else extension


def parse_extensions(constraints: Dict[str, str]) -> List[str]:
    """从依赖约束中提取 ext-* 扩展名"""
    extensions = []
    for package in constraints:
        match = EXTENSION_REGEX.match(package)
        if match:
            extensions.append(match.group('extension'))
    return extensions
