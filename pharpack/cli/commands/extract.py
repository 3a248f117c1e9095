"""
Extract 命令实现

把 PHAR 中的文件解包到目录。
"""

from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn

from ...phar import Phar, PharError


console = Console()


def extract_command(
    phar: str = typer.Argument(..., help="PHAR 文件路径"),
    output_dir: str = typer.Option("./extracted", "--dir", "-d", help="输出目录"),
    files: Optional[List[str]] = typer.Option(None, "--file", help="只解包指定的条目（可重复）"),
    force: bool = typer.Option(False, "--force", "-f", help="强制覆盖已存在的文件")
) -> None:
    """解包 PHAR

    示例:
        pharpack extract app.phar
        pharpack extract app.phar -d output/ --file index.php
    """
    phar_path = Path(phar)
    output_path = Path(output_dir)

    if not phar_path.is_file():
        console.print(f"[red]PHAR 文件不存在: {phar_path}[/red]")
        raise typer.Exit(1)

    if output_path.exists() and not force:
        if any(output_path.iterdir()):
            console.print(f"[red]输出目录不为空: {output_path}[/red]")
            console.print("使用 --force 参数强制覆盖")
            raise typer.Exit(1)

    try:
        console.print(f"正在解包: [cyan]{phar_path}[/cyan]")
        console.print(f"输出目录: [cyan]{output_path}[/cyan]")

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console
        ) as progress:
            task = progress.add_task("读取归档...", total=None)
            archive = Phar(phar_path)

            progress.update(task, description=f"解包 {len(files) if files else archive.count()} 个文件...")
            extracted = archive.extract_to(output_path, files or None, overwrite=force)

            progress.update(task, description="完成")

        console.print(f"✓ 解包完成: [green]{output_path}[/green] ({len(extracted)} 个文件)")

    except (PharError, OSError) as e:
        console.print(f"[red]解包失败: {e}[/red]")
        raise typer.Exit(1)
