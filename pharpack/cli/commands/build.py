"""
Compile 命令实现（编译 PHAR）

编译 PHAR 的核心命令。
"""

import traceback
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from ...config import ConfigError, ConfigValidationError, config_loader
from ...config.schema import SigningAlgorithm
from ...utils.logging import set_log_level, set_log_file, OutputLevel


console = Console()


def compile_command(
    config: Optional[str] = typer.Option(None, "--config", "-c", help="配置文件路径，缺省时在工作目录中查找"),
    working_dir: str = typer.Option(".", "--working-dir", "-d", help="工作目录"),
    output: Optional[str] = typer.Option(None, "--output", "-o", help="输出 PHAR 路径，覆盖配置中的 output"),
    no_parallel: bool = typer.Option(False, "--no-parallel", help="禁用并行处理"),
    debug: bool = typer.Option(False, "--debug", help="调试模式：把归档内容解包到 .box_dump"),
    dev: bool = typer.Option(False, "--dev", help="开发模式：跳过压缩以加快编译"),
    log_file: Optional[str] = typer.Option(None, "--log-file", help="日志输出文件"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="输出详细调试日志 (DEBUG 级别)"),
) -> None:
    """编译 PHAR

    示例:
        pharpack compile
        pharpack compile -c pharpack.yaml --no-parallel
        pharpack compile -d path/to/project --dev
    """
    from ...build.builder import Builder

    # 初始化日志：在任何输出前设置
    set_log_level(OutputLevel.DEBUG if verbose or debug else OutputLevel.INFO)

    if log_file:
        try:
            set_log_file(log_file)
        except OSError:
            console.print(f"[yellow]无法写入日志文件: {log_file}[/yellow]")

    working_path = Path(working_dir).resolve()
    config_path = Path(config) if config else config_loader.find_config_file(working_path)

    try:
        if config_path is not None:
            console.print(f"[cyan]正在加载配置文件[/cyan]: {config_path}")
        else:
            console.print("[yellow]未找到配置文件，使用默认配置[/yellow]")
        config_obj = config_loader.load(config_path, working_path)
    except ConfigValidationError as e:
        console.print(f"[red]配置验证失败:[/red]\n{e.format_errors()}")
        raise typer.Exit(1)
    except ConfigError as e:
        console.print(f"[red]配置错误: {e}[/red]")
        raise typer.Exit(1)

    signing = config_obj.signing
    if signing.algorithm == SigningAlgorithm.OPENSSL and signing.prompt_key_pass and signing.key_pass is None:
        signing.key_pass = typer.prompt("私钥口令", hide_input=True)

    builder = Builder()

    console.print("[cyan]开始编译 PHAR...[/cyan]")
    if no_parallel:
        console.print("[dim]已禁用并行处理[/dim]")

    def progress_callback(stage: str, current: int, total: int, message: str = "") -> None:
        """进度回调函数，显示进度"""
        if total > 0:
            percentage = (current / total) * 100
            if message:
                console.print(f"[blue]{stage}[/blue]: {message} ({percentage:.0f}%)")
            else:
                console.print(f"[blue]{stage}[/blue]: {percentage:.0f}%")

    try:
        result = builder.build(
            config_obj,
            Path(output).resolve() if output else None,
            progress_callback=progress_callback,
            config_path=config_path,
            debug=debug,
            dev=dev,
            parallel=not no_parallel,
        )
    except Exception as e:
        console.print(f"[red]✗ 编译过程中发生意外错误[/red]: {e}")
        if log_file or verbose:
            console.print(f"[yellow]详细错误信息:[/yellow]\n{traceback.format_exc()}")
        raise typer.Exit(1)

    if not result.success:
        console.print(f"[red]✗ 编译失败[/red]: {result.error}")
        if log_file:
            console.print(f"[yellow]请检查日志文件 {log_file} 获取详细信息。[/yellow]")
        raise typer.Exit(1)

    console.print(f"[green]✓ PHAR 编译完成[/green]: {result.output_path}")
    console.print(f"[blue]文件数量[/blue]: {result.file_count}")
    size_kb = (result.output_size or 0) / 1024
    console.print(f"[blue]文件大小[/blue]: {size_kb:.1f} KB")
    if result.compression:
        console.print(f"[blue]压缩算法[/blue]: {result.compression}")
    if result.signature:
        console.print(f"[blue]签名[/blue]: {result.signature['hash_type']} {result.signature['hash']}")
