"""
Validate 命令实现

验证配置文件，并对能通过验证但可能导致编译结果不符合预期的设置给出警告。
"""

import json
from pathlib import Path
from typing import List

import typer
from rich.console import Console
from rich.table import Table

from ...config import validate_config, config_loader, ConfigError, PharpackConfig
from ...config.schema import CompactorName, SigningAlgorithm
from ...phar import OPENSSL_AVAILABLE, is_codec_available


console = Console()


def collect_warnings(config: PharpackConfig) -> List[str]:
    """检查通过验证的配置中可疑的设置"""
    warnings = []

    if config.get_main_script_path() is None:
        warnings.append("未找到入口脚本，归档将没有可执行入口")
    elif not config.get_main_script_path().is_file():
        warnings.append(f"入口脚本不存在: {config.get_main_script_path()}")

    if config.composer.dump_autoload and config.get_decoded_composer_json() is None:
        warnings.append("未找到 composer.json，不会重新生成自动加载")

    if CompactorName.PHP_SCOPER in config.compactors and not config.scoper.prefix:
        warnings.append(f"未配置 scoper.prefix，将使用自动生成的前缀 {config.get_scoper_prefix()}")

    if not is_codec_available(config.compression):
        warnings.append(f"当前环境不支持 {config.compression.value} 压缩，编译时将跳过压缩")

    if config.signing.algorithm == SigningAlgorithm.OPENSSL and not OPENSSL_AVAILABLE:
        warnings.append("OpenSSL 签名需要安装 cryptography 库")

    if config.signing.algorithm in (SigningAlgorithm.MD5, SigningAlgorithm.SHA1):
        warnings.append(f"{config.signing.algorithm.value} 签名强度较弱，建议使用 SHA256 或 SHA512")

    return warnings


def validate_command(
    config: str = typer.Option(..., "--config", "-c", help="配置文件路径"),
    json_output: bool = typer.Option(False, "--json", help="输出 JSON 格式的错误信息"),
    show_warnings: bool = typer.Option(True, "--warnings/--no-warnings", help="显示警告信息")
) -> None:
    """验证配置文件

    示例:
        pharpack validate -c pharpack.yaml
        pharpack validate -c box.json --json
    """
    config_path = Path(config)

    if not config_path.exists():
        console.print(f"[red]配置文件不存在: {config_path}[/red]")
        raise typer.Exit(1)

    if not json_output:
        console.print(f"正在验证配置文件: [cyan]{config_path}[/cyan]")

    errors = validate_config(config_path)

    if errors:
        if json_output:
            error_data = {
                "file": str(config_path),
                "errors": errors,
                "error_count": len(errors)
            }
            console.print(json.dumps(error_data, ensure_ascii=False, indent=2, default=str))
        else:
            console.print(f"[red]配置文件验证失败 ({len(errors)} 个错误):[/red]")
            console.print()

            table = Table(title="验证错误")
            table.add_column("位置", style="cyan", no_wrap=True)
            table.add_column("错误信息", style="red")
            table.add_column("输入值", style="yellow")

            for error in errors:
                location = " -> ".join(str(item) for item in error.get('loc', []))
                input_value = str(error.get('input', ''))
                if len(input_value) > 47:
                    input_value = input_value[:47] + "..."

                table.add_row(location or "根级别", error.get('msg', '未知错误'), input_value or "-")

            console.print(table)

        raise typer.Exit(1)

    try:
        warnings = collect_warnings(config_loader.load_from_file(config_path)) if show_warnings else []
    except (ConfigError, OSError, ValueError) as e:
        console.print(f"[red]验证失败: {e}[/red]")
        raise typer.Exit(1)

    if json_output:
        console.print(json.dumps({"file": str(config_path), "errors": [], "warnings": warnings}, ensure_ascii=False, indent=2))
        return

    console.print("[green]✓ 配置文件验证通过[/green]")
    for message in warnings:
        console.print(f"[yellow]⚠ {message}[/yellow]")
