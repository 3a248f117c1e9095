"""
配置加载器

负责从 YAML（或 JSON）文件加载配置并进行验证。
"""

import copy
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from .schema import PharpackConfig

# 未指定配置文件时按顺序查找
DEFAULT_CONFIG_FILES = ('pharpack.yaml', 'pharpack.yml', 'box.json', 'box.json.dist')


class ConfigError(Exception):
    """配置错误基类"""
    pass


class ConfigValidationError(ConfigError):
    """配置验证错误"""

    def __init__(self, message: str, errors: List[Dict[str, Any]]):
        super().__init__(message)
        self.errors = errors

    def format_errors(self) -> str:
        """格式化错误信息为人类可读的格式"""
        formatted = []
        for error in self.errors:
            loc = " -> ".join(str(item) for item in error.get('loc', []))
            msg = error.get('msg', '未知错误')
            input_val = error.get('input', '')

            if loc:
                formatted.append(f"字段 '{loc}': {msg}")
                if input_val not in ('', None) and not isinstance(input_val, dict):
                    formatted.append(f"  输入值: {input_val}")
            else:
                formatted.append(f"根级别: {msg}")

        return "\n".join(formatted)


@dataclass
class ValidationResult:
    """配置验证结果"""
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    config: Optional[PharpackConfig] = None


class ConfigLoader:
    """配置加载器"""

    def __init__(self):
        self.yaml = YAML(typ='safe')

    def find_config_file(self, working_dir: Union[str, Path]) -> Optional[Path]:
        """在工作目录中查找默认配置文件"""
        for name in DEFAULT_CONFIG_FILES:
            candidate = Path(working_dir) / name
            if candidate.is_file():
                return candidate
        return None

    def load(self, config_path: Optional[Union[str, Path]], working_dir: Union[str, Path] = '.') -> PharpackConfig:
        """加载配置；没有配置文件时使用默认配置，以工作目录为项目根目录"""
        if config_path is None:
            config_path = self.find_config_file(working_dir)

        if config_path is None:
            return self.load_from_dict({}, Path(working_dir).resolve())

        return self.load_from_file(config_path)

    def load_from_file(self, config_path: Union[str, Path]) -> PharpackConfig:
        """从文件加载配置

        Raises:
            ConfigError: 配置加载或验证错误
        """
        config_path = Path(config_path)

        if not config_path.exists():
            raise ConfigError(f"配置文件不存在: {config_path}")

        if not config_path.is_file():
            raise ConfigError(f"配置路径不是文件: {config_path}")

        suffix = config_path.suffix.lower()
        if config_path.name.endswith('.json.dist'):
            suffix = '.json'

        if suffix not in ('.yaml', '.yml', '.json'):
            raise ConfigError(f"配置文件必须是 .yaml、.yml 或 .json 格式: {config_path}")

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                raw_data = json.load(f) if suffix == '.json' else self.yaml.load(f)
        except (YAMLError, json.JSONDecodeError) as e:
            raise ConfigError(f"配置文件解析错误 {config_path}: {e}")
        except OSError as e:
            raise ConfigError(f"文件读取错误: {e}")

        if raw_data is None:
            raw_data = {}

        if not isinstance(raw_data, dict):
            raise ConfigError("配置文件根级别必须是对象/字典格式")

        return self.load_from_dict(raw_data, config_path.parent.resolve())

    def load_from_dict(self, data: Dict[str, Any], base_path: Optional[Path] = None) -> PharpackConfig:
        """从字典加载配置

        Args:
            data: 配置数据字典
            base_path: 相对路径的基准路径（通常是配置文件所在目录）

        Raises:
            ConfigValidationError: 配置验证错误
        """
        data = copy.deepcopy(data)
        if base_path is not None:
            self._resolve_relative_paths(data, Path(base_path))

        try:
            return PharpackConfig.from_dict(data)
        except ValidationError as e:
            raise ConfigValidationError("配置验证失败", list(e.errors()))

    def save_to_file(self, config: PharpackConfig, output_path: Union[str, Path]) -> None:
        """保存配置到 YAML 文件"""
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        dumper = YAML()
        dumper.width = 4096
        try:
            with open(output_path, 'w', encoding='utf-8') as f:
                dumper.dump(config.to_dict(), f)
        except OSError as e:
            raise ConfigError(f"保存配置文件失败: {e}")

    def validate_file(self, config_path: Union[str, Path]) -> List[Dict[str, Any]]:
        """验证配置文件并返回错误列表，空列表表示验证通过"""
        try:
            self.load_from_file(config_path)
            return []
        except ConfigValidationError as e:
            return e.errors
        except ConfigError as e:
            return [{
                'loc': [],
                'msg': str(e),
                'type': 'config_error'
            }]

    def _resolve_relative_paths(self, data: Dict[str, Any], config_dir: Path) -> None:
        """解析配置中的相对路径

        base_path 相对于配置文件目录，其余路径相对于 base_path。
        """
        base_path = Path(data.get('base_path') or '.')
        if not base_path.is_absolute():
            base_path = (config_dir / base_path).resolve()
        data['base_path'] = str(base_path)

        path_fields = [
            ('main',),
            ('output',),
            ('stub', 'path'),
            ('stub', 'banner_file'),
            ('signing', 'key'),
        ]

        for field_path in path_fields:
            self._resolve_field_path(data, field_path, base_path)

        if isinstance(data.get('inputs'), list):
            for input_item in data['inputs']:
                if isinstance(input_item, dict) and isinstance(input_item.get('path'), str):
                    if not Path(input_item['path']).is_absolute():
                        input_item['path'] = str(base_path / input_item['path'])

    def _resolve_field_path(self, data: Dict[str, Any], field_path: tuple, base_path: Path) -> None:
        """解析单个字段的相对路径"""
        current = data

        for key in field_path[:-1]:
            if key not in current or not isinstance(current[key], dict):
                return
            current = current[key]

        final_key = field_path[-1]
        path_value = current.get(final_key)
        if isinstance(path_value, str) and path_value and not Path(path_value).is_absolute():
            current[final_key] = str(base_path / path_value)


# 全局加载器实例
config_loader = ConfigLoader()


def validate_config(config_path: Union[str, Path]) -> List[Dict[str, Any]]:
    """便捷函数：验证配置文件"""
    return config_loader.validate_file(config_path)


def validate_config_with_result(config_path: Union[str, Path]) -> ValidationResult:
    """验证配置并返回详细结果"""
    try:
        config = config_loader.load_from_file(config_path)
        return ValidationResult(is_valid=True, config=config)
    except ConfigValidationError as e:
        return ValidationResult(is_valid=False, errors=e.format_errors().splitlines())
    except ConfigError as e:
        return ValidationResult(is_valid=False, errors=[f"配置加载失败: {e}"])
