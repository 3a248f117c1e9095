"""
pharpack CLI 主入口

提供命令行接口，支持 compile/validate/info/extract/verify 等命令。
"""

import sys
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from .. import __version__
from ..config.schema import CompressionAlgorithm
from ..phar import OPENSSL_AVAILABLE, get_required_extension, is_codec_available
from ..utils import configure_logging
from .commands import build, validate, info, extract, verify


# 创建主应用
app = typer.Typer(
    name="pharpack",
    help="pharpack - PHP 应用的 PHAR 归档编译工具",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

# 控制台输出
console = Console()


def version_callback(value: bool) -> None:
    """显示版本信息"""
    if value:
        console.print(f"pharpack v{__version__}")
        raise typer.Exit()


def verbose_callback(verbose: bool) -> None:
    """配置详细输出"""
    configure_logging(level="DEBUG" if verbose else "INFO")


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="显示版本信息"
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose", "-v",
        callback=verbose_callback,
        help="启用详细输出"
    )
) -> None:
    """pharpack - PHP 应用的 PHAR 归档编译工具

    使用 --help 查看可用命令的详细信息。
    """
    pass


# 注册子命令
app.command("compile", help="编译 PHAR")(build.compile_command)
app.command("validate", help="验证配置文件")(validate.validate_command)
app.command("info", help="显示 PHAR 信息")(info.info_command)
app.command("extract", help="解包 PHAR")(extract.extract_command)
app.command("verify", help="校验 PHAR 签名")(verify.verify_command)


@app.command("env")
def env_command() -> None:
    """显示运行环境支持的压缩和签名能力"""
    console.print("[bold]pharpack 运行环境[/bold]")
    console.print()

    table = Table(title="版本信息")
    table.add_column("组件", style="cyan")
    table.add_column("版本", style="green")

    table.add_row("pharpack", __version__)
    table.add_row("Python", f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}")

    console.print(table)
    console.print()

    algo_table = Table(title="支持的压缩算法")
    algo_table.add_column("算法", style="cyan")
    algo_table.add_column("状态", style="green")
    algo_table.add_column("运行时需要的 PHP 扩展", style="yellow")

    for algo in CompressionAlgorithm:
        status = "✓ 可用" if is_codec_available(algo) else "✗ 不可用"
        algo_table.add_row(algo.value, status, get_required_extension(algo) or "-")

    console.print(algo_table)
    console.print()

    if OPENSSL_AVAILABLE:
        import cryptography
        console.print(f"OpenSSL 签名: [green]✓ 可用 (cryptography {cryptography.__version__})[/green]")
    else:
        console.print("OpenSSL 签名: [red]✗ 不可用（需要安装 cryptography）[/red]")


if __name__ == "__main__":
    app()
