"""
Verify 命令实现

校验 PHAR 签名。哈希签名在读取归档时已校验；OpenSSL 签名使用旁边的 .pubkey 或指定的公钥。
"""

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from ...phar import Phar, PharError


console = Console()


def verify_command(
    phar: str = typer.Argument(..., help="PHAR 文件路径"),
    public_key: Optional[str] = typer.Option(None, "--public-key", "-k", help="OpenSSL 公钥文件，缺省为 <phar>.pubkey"),
) -> None:
    """校验 PHAR 签名

    示例:
        pharpack verify app.phar
        pharpack verify app.phar -k keys/app.pubkey
    """
    phar_path = Path(phar)

    if not phar_path.is_file():
        console.print(f"[red]PHAR 文件不存在: {phar_path}[/red]")
        raise typer.Exit(1)

    try:
        archive = Phar(phar_path)
        key = Path(public_key).read_bytes() if public_key else None
        valid = archive.verify_signature(key)
    except (PharError, OSError) as e:
        console.print(f"[red]✗ 签名校验失败: {e}[/red]")
        raise typer.Exit(1)

    signature = archive.get_signature()
    if signature is None:
        console.print("[red]✗ PHAR 没有签名[/red]")
        raise typer.Exit(1)

    if not valid:
        console.print(f"[red]✗ {signature['hash_type']} 签名无效[/red]")
        raise typer.Exit(1)

    console.print(f"[green]✓ 签名有效[/green] ({signature['hash_type']}): {signature['hash']}")
