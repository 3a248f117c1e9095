"""运行环境检查器"""

from .dumper import CHECKER_SCRIPT, REQUIREMENTS_CONFIG, Requirement, RequirementsDumper, build_requirements
from .package_info import PackageInfo, parse_extensions

__all__ = [
    "CHECKER_SCRIPT",
    "REQUIREMENTS_CONFIG",
    "Requirement",
    "RequirementsDumper",
    "build_requirements",
    "PackageInfo",
    "parse_extensions",
]
