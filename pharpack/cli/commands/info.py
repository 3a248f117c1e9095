"""
Info 命令实现

显示 PHAR 的 manifest 信息：别名、签名、元数据、压缩情况和条目列表。
"""

import json
from datetime import datetime
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from ...phar import Phar, PharError
from ...utils import format_size


console = Console()


def _summarize(archive: Phar, phar_path: Path) -> dict:
    entries = list(archive)
    compression = {}
    for entry in entries:
        compression[entry.compression.value] = compression.get(entry.compression.value, 0) + 1

    return {
        "path": str(phar_path),
        "size": phar_path.stat().st_size,
        "alias": archive.get_alias(),
        "signature": archive.get_signature(),
        "metadata": archive.get_metadata() if archive.has_metadata() else None,
        "compression": compression,
        "file_count": len(entries),
        "contents_size": sum(entry.size for entry in entries),
        "files": [
            {
                "name": entry.name,
                "size": entry.size,
                "compression": entry.compression.value,
                "permissions": oct(entry.permissions),
                "timestamp": entry.timestamp,
            }
            for entry in entries
        ],
    }


def info_command(
    phar: str = typer.Argument(..., help="PHAR 文件路径"),
    json_output: bool = typer.Option(False, "--json", help="输出 JSON 格式"),
    show_files: bool = typer.Option(False, "--list", "-l", help="显示文件列表"),
    show_stub: bool = typer.Option(False, "--stub", help="显示 stub"),
) -> None:
    """显示 PHAR 信息

    示例:
        pharpack info app.phar
        pharpack info app.phar --list
        pharpack info app.phar --json
    """
    phar_path = Path(phar)

    if not phar_path.is_file():
        console.print(f"[red]PHAR 文件不存在: {phar_path}[/red]")
        raise typer.Exit(1)

    try:
        archive = Phar(phar_path)
        summary = _summarize(archive, phar_path)
    except PharError as e:
        console.print(f"[red]读取 PHAR 失败: {e}[/red]")
        raise typer.Exit(1)

    if json_output:
        if not show_files:
            del summary["files"]
        if show_stub:
            summary["stub"] = archive.get_stub()
        console.print(json.dumps(summary, ensure_ascii=False, indent=2, default=str))
        return

    table = Table(title="PHAR 信息")
    table.add_column("属性", style="cyan")
    table.add_column("值", style="green")

    table.add_row("路径", summary["path"])
    table.add_row("大小", format_size(summary["size"]))
    table.add_row("别名", summary["alias"] or "-")
    table.add_row("文件数", str(summary["file_count"]))
    table.add_row("内容大小", format_size(summary["contents_size"]))
    table.add_row("压缩", ", ".join(f"{algo}: {count}" for algo, count in summary["compression"].items()) or "-")

    signature = summary["signature"]
    table.add_row("签名", f"{signature['hash_type']} {signature['hash']}" if signature else "无")

    if summary["metadata"] is not None:
        table.add_row("元数据", repr(summary["metadata"]))

    console.print(table)

    if show_stub:
        console.print()
        console.print("[bold]Stub[/bold]")
        console.print(archive.get_stub(), markup=False, highlight=False)

    if show_files:
        console.print()
        files_table = Table(title=f"文件列表 ({summary['file_count']} 个文件)")
        files_table.add_column("路径", style="cyan")
        files_table.add_column("大小", style="green")
        files_table.add_column("压缩", style="magenta")
        files_table.add_column("权限", style="yellow")
        files_table.add_column("修改时间", style="yellow")

        for file_info in summary["files"]:
            files_table.add_row(
                file_info["name"],
                format_size(file_info["size"]),
                file_info["compression"],
                file_info["permissions"],
                datetime.fromtimestamp(file_info["timestamp"]).strftime("%Y-%m-%d %H:%M:%S"),
            )

        console.print(files_table)
