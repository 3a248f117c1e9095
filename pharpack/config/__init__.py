"""配置和 Schema 模块

提供 YAML/JSON 配置文件的加载、验证和保存功能。
"""

from .schema import PharpackConfig
from .loader import (
    ConfigLoader,
    ConfigValidationError,
    ConfigError,
    validate_config,
    validate_config_with_result,
    config_loader
)

__all__ = [
    # 主要类
    "PharpackConfig",
    "ConfigLoader",

    # 异常类
    "ConfigError",
    "ConfigValidationError",

    # 便捷函数
    "validate_config",
    "validate_config_with_result",

    # 单例
    "config_loader",
]
