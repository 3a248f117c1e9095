"""
配置 Schema 定义

使用 Pydantic 定义严格的编译配置模型，支持验证和类型检查。
"""

from __future__ import annotations

import hashlib
import json
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

DEFAULT_BANNER = (
    "Generated by pharpack.\n"
    "\n"
    "@link https://github.com/pharpack/pharpack"
)

DEFAULT_SHEBANG = "#!/usr/bin/env php"


class CompressionAlgorithm(str, Enum):
    """归档压缩算法枚举"""
    NONE = "none"
    GZ = "gz"
    BZ2 = "bz2"


class SigningAlgorithm(str, Enum):
    """签名算法枚举"""
    MD5 = "MD5"
    SHA1 = "SHA1"
    SHA256 = "SHA256"
    SHA512 = "SHA512"
    OPENSSL = "OPENSSL"


class CompactorName(str, Enum):
    """可用的压缩器（内容转换器）"""
    PHP = "php"
    JSON = "json"
    PHP_SCOPER = "php_scoper"


class ConfigModel(BaseModel):
    """配置元信息模型"""
    version: int = Field(1, description="配置 schema 版本", ge=1)

    @field_validator('version')
    @classmethod
    def validate_config_version(cls, v: int) -> int:
        SUPPORTED_VERSIONS = [1]
        if v not in SUPPORTED_VERSIONS:
            raise ValueError(f"不支持的配置版本 {v}，支持的版本: {SUPPORTED_VERSIONS}")
        return v


class InputPathModel(BaseModel):
    """输入路径模型"""
    path: Union[str, Path] = Field(..., description="输入文件或目录路径")
    binary: bool = Field(False, description="是否按二进制原样打包（跳过内容转换）")
    recursive: bool = Field(True, description="目录是否递归包含子目录")

    @field_validator('path')
    @classmethod
    def validate_path(cls, v: Union[str, Path]) -> Path:
        return Path(v)


class MapRuleModel(BaseModel):
    """路径映射规则：以 match 开头的路径替换为 replace，空 match 匹配全部"""
    match: str = Field("", description="匹配的路径前缀")
    replace: str = Field(..., description="替换后的路径前缀")

    @field_validator('match', 'replace')
    @classmethod
    def strip_slashes(cls, v: str) -> str:
        return v.replace('\\', '/').strip('/')


class ScoperModel(BaseModel):
    """PHP 符号作用域（前缀）配置"""
    prefix: Optional[str] = Field(None, description="命名空间前缀，缺省时自动生成")
    exclude_namespaces: List[str] = Field(default_factory=list, description="不加前缀的命名空间")
    expose_global_classes: bool = Field(True, description="是否暴露全局命名空间中的类")
    expose_global_functions: bool = Field(True, description="是否暴露全局命名空间中的函数")

    @field_validator('prefix')
    @classmethod
    def validate_prefix(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip('\\')
        if not v or not all(part.isidentifier() for part in v.split('\\')):
            raise ValueError(f"无效的命名空间前缀: {v!r}")
        return v

    @field_validator('exclude_namespaces')
    @classmethod
    def normalize_namespaces(cls, v: List[str]) -> List[str]:
        return [ns.strip('\\') for ns in v if ns.strip('\\')]


class StubModel(BaseModel):
    """引导代码（stub）配置"""
    generate: bool = Field(True, description="是否自动生成 stub")
    path: Optional[Union[str, Path]] = Field(None, description="自定义 stub 文件路径")
    shebang: Optional[str] = Field(DEFAULT_SHEBANG, description="shebang 行，null 表示不写")
    banner: Optional[str] = Field(DEFAULT_BANNER, description="stub 顶部的注释横幅")
    banner_file: Optional[Union[str, Path]] = Field(None, description="从文件读取横幅")
    intercept: bool = Field(False, description="是否调用 Phar::interceptFileFuncs()")

    @field_validator('shebang')
    @classmethod
    def validate_shebang(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        if not v.startswith('#!'):
            raise ValueError(f'shebang 行必须以 "#!" 开头，实际为: {v!r}')
        return v

    @model_validator(mode='after')
    def validate_stub_source(self) -> 'StubModel':
        if self.generate and self.path is not None:
            raise ValueError("stub.generate 与 stub.path 不能同时设置")
        return self


class SigningModel(BaseModel):
    """签名配置"""
    algorithm: SigningAlgorithm = Field(SigningAlgorithm.SHA1, description="签名算法")
    key: Optional[Union[str, Path]] = Field(None, description="OpenSSL 私钥文件路径")
    key_pass: Optional[str] = Field(None, description="私钥口令")
    prompt_key_pass: bool = Field(False, description="编译时交互式询问私钥口令")

    @model_validator(mode='after')
    def validate_key(self) -> 'SigningModel':
        if self.key is not None and self.algorithm != SigningAlgorithm.OPENSSL:
            # 提供了私钥即意味着使用 OpenSSL 签名
            self.algorithm = SigningAlgorithm.OPENSSL
        if self.algorithm == SigningAlgorithm.OPENSSL and self.key is None:
            raise ValueError("Expected to have a private key for OpenSSL signing but none have been provided.")
        return self


class ComposerModel(BaseModel):
    """Composer 相关配置"""
    dump_autoload: bool = Field(True, description="是否在归档中重新生成 Composer 自动加载")
    exclude_composer_files: bool = Field(True, description="是否从归档中删除 composer.json/lock 等文件")
    exclude_dev_files: bool = Field(True, description="是否排除 dev 依赖")
    bin: Optional[str] = Field(None, description="Composer 可执行文件路径")


class ReplacementsModel(BaseModel):
    """占位符配置"""
    values: Dict[str, Union[str, int, float, bool]] = Field(
        default_factory=dict, description="占位符 -> 替换值"
    )
    datetime: Optional[str] = Field(None, description="替换为编译时间的占位符")
    datetime_format: str = Field("%Y-%m-%d %H:%M:%S %Z", description="编译时间格式 (strftime)")
    git_commit: Optional[str] = Field(None, description="替换为 git 提交哈希的占位符")
    git_commit_short: Optional[str] = Field(None, description="替换为 git 短提交哈希的占位符")
    git_version: Optional[str] = Field(None, description="替换为 git describe 版本的占位符")


class PharpackConfig(BaseModel):
    """pharpack 主配置模型

    整个配置文件的根模型。
    """

    config: ConfigModel = Field(default_factory=ConfigModel, description="配置元信息")

    base_path: Path = Field(Path("."), description="项目根目录")
    main: Optional[Union[str, Path]] = Field(None, description="入口脚本")
    output: Optional[Union[str, Path]] = Field(None, description="输出 PHAR 路径")
    alias: Optional[str] = Field(None, description="PHAR 别名")

    inputs: List[InputPathModel] = Field(default_factory=list, description="输入文件/目录列表，空表示自动发现")
    exclude: List[str] = Field(default_factory=list, description="排除模式列表（glob 格式）")
    map: List[MapRuleModel] = Field(default_factory=list, description="路径映射规则")

    compactors: List[CompactorName] = Field(default_factory=list, description="内容压缩器列表（按顺序）")
    scoper: ScoperModel = Field(default_factory=ScoperModel, description="PHP 符号前缀配置")
    replacements: ReplacementsModel = Field(default_factory=ReplacementsModel, description="占位符配置")

    stub: StubModel = Field(default_factory=StubModel, description="stub 配置")
    compression: CompressionAlgorithm = Field(CompressionAlgorithm.NONE, description="压缩算法")
    signing: SigningModel = Field(default_factory=SigningModel, description="签名配置")
    metadata: Optional[Any] = Field(None, description="PHAR 元数据")
    chmod: Optional[str] = Field(None, description="输出文件权限（八进制字符串，如 0755）")

    check_requirements: bool = Field(True, description="是否嵌入运行环境检查器")
    composer: ComposerModel = Field(default_factory=ComposerModel, description="Composer 配置")
    parallel: bool = Field(True, description="是否允许并行处理文件")

    model_config = {
        "extra": "forbid",
        "validate_assignment": True,
        "str_strip_whitespace": True,
    }

    @field_validator('chmod')
    @classmethod
    def validate_chmod(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        try:
            mode = int(str(v), 8)
        except ValueError:
            raise ValueError(f"chmod 必须是八进制字符串，实际为: {v!r}")
        if not 0 <= mode <= 0o7777:
            raise ValueError(f"chmod 超出范围: {v!r}")
        return str(v)

    @field_validator('alias')
    @classmethod
    def validate_alias(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        if not v or any(char in v for char in '/\\:;'):
            raise ValueError(f'别名 "{v}" 无效：不能为空，且不能包含 / \\ : ;')
        return v

    @model_validator(mode='after')
    def validate_scoper_compactor(self) -> 'PharpackConfig':
        """使用作用域前缀时需要重新生成自动加载，否则前缀后的类无法加载"""
        if CompactorName.PHP_SCOPER in self.compactors and not self.composer.dump_autoload:
            raise ValueError("启用 php_scoper 时必须开启 composer.dump_autoload")
        return self

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典格式"""
        data = self.model_dump(exclude_none=True)

        def convert_values(obj):
            if isinstance(obj, dict):
                return {k: convert_values(v) for k, v in obj.items()}
            elif isinstance(obj, list):
                return [convert_values(item) for item in obj]
            elif isinstance(obj, Enum):
                return obj.value
            elif isinstance(obj, Path):
                return str(obj)
            return obj

        return convert_values(data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PharpackConfig':
        """从字典创建配置实例"""
        return cls.model_validate(data)

    def get_main_script_path(self) -> Optional[Path]:
        """获取入口脚本路径

        未配置时依次尝试 composer.json 的第一个 bin 和 index.php。
        """
        if self.main is not None:
            return self._resolve(self.main)

        composer_json = self.get_decoded_composer_json() or {}
        bins = composer_json.get('bin') or []
        if isinstance(bins, str):
            bins = [bins]
        if bins:
            return self._resolve(bins[0])

        index = self.base_path / 'index.php'
        return index if index.is_file() else None

    def get_main_script_contents(self) -> Optional[str]:
        """读取入口脚本内容并去掉 shebang 行"""
        main = self.get_main_script_path()
        if main is None:
            return None

        contents = main.read_text(encoding='utf-8')
        if contents.startswith('#!'):
            _, _, contents = contents.partition('\n')
        return contents

    def get_output_path(self) -> Path:
        """获取输出路径，缺省为入口脚本同名的 .phar"""
        if self.output is not None:
            return self._resolve(self.output)

        main = self.get_main_script_path()
        stem = main.stem if main is not None else 'index'
        return self.base_path / f'{stem}.phar'

    def get_tmp_output_path(self) -> Path:
        """编译期间使用的临时输出路径，完成后重命名到最终路径"""
        output = self.get_output_path()
        return output.with_name(output.name + '.tmp')

    def get_alias(self) -> str:
        """获取别名，未配置时根据输出路径生成固定别名"""
        if self.alias:
            return self.alias
        digest = hashlib.sha1(str(self.get_output_path()).encode('utf-8')).hexdigest()[:13]
        return f'pharpack-auto-generated-alias-{digest}.phar'

    def get_scoper_prefix(self) -> str:
        """获取符号前缀，未配置时由 base_path 派生"""
        if self.scoper.prefix:
            return self.scoper.prefix
        digest = hashlib.sha1(str(self.base_path.resolve()).encode('utf-8')).hexdigest()[:12]
        return f'_PhpScoper{digest}'

    def get_stub_path(self) -> Optional[Path]:
        return self._resolve(self.stub.path) if self.stub.path is not None else None

    def get_stub_banner_path(self) -> Optional[Path]:
        return self._resolve(self.stub.banner_file) if self.stub.banner_file is not None else None

    def get_stub_banner_contents(self) -> Optional[str]:
        """获取横幅内容，横幅文件优先"""
        banner_path = self.get_stub_banner_path()
        if banner_path is not None:
            return banner_path.read_text(encoding='utf-8').strip()
        return self.stub.banner

    def get_private_key_path(self) -> Optional[Path]:
        return self._resolve(self.signing.key) if self.signing.key is not None else None

    def get_file_mode(self) -> Optional[int]:
        return int(self.chmod, 8) if self.chmod is not None else None

    def get_decoded_composer_json(self) -> Optional[Dict[str, Any]]:
        return self._decode_json_file('composer.json')

    def get_decoded_composer_lock(self) -> Optional[Dict[str, Any]]:
        return self._decode_json_file('composer.lock')

    def get_vendor_dir(self) -> str:
        """Composer vendor 目录（正斜杠、无结尾斜杠）"""
        composer_json = self.get_decoded_composer_json() or {}
        vendor_dir = (composer_json.get('config') or {}).get('vendor-dir', 'vendor')
        return str(vendor_dir).replace('\\', '/').rstrip('/')

    def dump_autoload(self) -> bool:
        """只有存在 composer.json 时才重新生成自动加载"""
        return self.composer.dump_autoload and self.get_decoded_composer_json() is not None

    def _decode_json_file(self, name: str) -> Optional[Dict[str, Any]]:
        path = self.base_path / name
        if not path.is_file():
            return None
        with open(path, 'r', encoding='utf-8') as f:
            return json.load(f)

    def _resolve(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        return path if path.is_absolute() else self.base_path / path
