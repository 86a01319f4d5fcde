#!/usr/bin/env python3
"""
dropshare CLI

Send any number of files/directories over a local network in one HTTP
exchange, or accept a single upload.

Usage:
    dropshare FILE                 # Serve one file as-is
    dropshare DIR FILE ...         # Serve a tar.gz of everything
    dropshare --zip DIR            # Serve a zip instead
    dropshare --receive            # Accept one upload
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn

from .config import load_config
from .errors import DropshareError
from .session import TransferSession

console = Console()
logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False, level: str = 'INFO'):
    """Configure logging with rich output."""
    level = logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_time=False, show_path=False)]
    )


@click.command()
@click.argument('paths', nargs=-1, type=click.Path(path_type=Path))
@click.option('-i', '--ip', default=None, help='Address to bind (default 127.0.0.1)')
@click.option('-p', '--port', type=int, default=None, help='Port to bind (default 7878)')
@click.option('-z', '--zip', 'use_zip', is_flag=True, help='Archive as zip instead of tar.gz')
@click.option('-U', '--receive', is_flag=True, help='Accept one upload instead of sending')
@click.option('--upload-dir', type=click.Path(file_okay=False, path_type=Path),
              default=None, help='Where received files are written')
@click.option('-c', '--config', 'config_path', type=click.Path(path_type=Path),
              default=None, help='JSON config file')
@click.option('-v', '--verbose', is_flag=True, help='Enable verbose output')
def cli(paths, ip, port, use_zip, receive, upload_dir, config_path, verbose):
    """Send files/directories over a local network, quickly, exactly once."""
    try:
        config = load_config(config_path)
    except ValueError as e:
        console.print(f"[red]Invalid configuration: {escape(str(e))}[/red]")
        sys.exit(1)
    setup_logging(verbose, config.log_level)
    
    if ip is not None:
        config.host = ip
    if port is not None:
        config.port = port
    if use_zip:
        config.encoding = 'zip'
    if receive:
        config.mode = 'receive'
    if upload_dir is not None:
        config.upload_dir = upload_dir
    
    try:
        session = TransferSession(config)
        result = asyncio.run(run(session, list(paths)))
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        sys.exit(130)
    except (DropshareError, OSError) as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        sys.exit(1)
    
    if result.conflict:
        console.print(f"[yellow]{result.filename} already exists, upload discarded[/yellow]")
    elif not result.completed:
        console.print("[yellow]Peer did not request the file, nothing was sent[/yellow]")
    elif config.receive:
        console.print(f"[green]✓ Received {result.filename} "
                      f"({format_size(result.bytes_received)})[/green]")
    else:
        console.print(f"[green]✓ Sent {result.artifact_name} "
                      f"({format_size(result.bytes_sent)})[/green]")


async def run(session: TransferSession, paths):
    def announce(host: str, port: int):
        if session.config.receive:
            console.print(f"Receiving into [blue]{session.config.upload_dir}[/blue] "
                          f"at [cyan]http://{host}:{port}[/cyan]")
        else:
            console.print(f"Serving [blue]{session.artifact.name}[/blue] "
                          f"at [cyan]http://{host}:{port}[/cyan]")
    
    if session.config.receive:
        return await session.receive(announce)
    
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("{task.completed}/{task.total}"),
        console=console,
        transient=True,
    ) as progress:
        task: Optional[int] = None
        
        def update_progress(index, entry):
            nonlocal task
            if task is None:
                task = progress.add_task("Archiving...", total=len(paths))
            progress.update(task, completed=index + 1,
                            description=f"Adding {entry.path}")
        
        artifact = await asyncio.to_thread(session.prepare, paths, update_progress)
    
    # Serving happens after the progress bar is gone
    with artifact:
        return await session.serve(announce)


def format_size(bytes_count: int) -> str:
    """Format bytes as human-readable size."""
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if bytes_count < 1024:
            return f"{bytes_count:.1f} {unit}"
        bytes_count /= 1024
    return f"{bytes_count:.1f} PB"


def main():
    cli()


if __name__ == '__main__':
    main()
