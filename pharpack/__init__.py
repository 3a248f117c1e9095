"""
pharpack - PHP 应用的 PHAR 归档编译工具

Builds PHAR archives from PHP projects: file mapping, compactors,
namespace scoping, compression and signing.
"""

__version__ = "0.1.0"
__license__ = "MIT"

from .box import Box
from .build.builder import Builder
from .config.schema import PharpackConfig

__all__ = ["Box", "Builder", "PharpackConfig", "__version__"]
