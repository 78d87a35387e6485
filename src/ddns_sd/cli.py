"""
Command-line interface for ddns-sd
"""
from typing import Optional
from pathlib import Path

import typer
from rich.console import Console

from .lib.cmd import (
    debug_command,
    list_command,
    reconcile_command,
    run_command,
)

console = Console()
app = typer.Typer(help="ddns-sd - Publish DNS-SD records for running Docker containers")

config_option = typer.Option(None, '--config', '-c', help='Path to a YAML configuration file')
debug_option = typer.Option(False, '--debug', '-d', help='Enable debug logging')


@app.command()
def run(
    config: Optional[Path] = config_option,
    keep_records: bool = typer.Option(False, '--keep-records', help='Leave records in place on shutdown'),
    debug: bool = debug_option,
):
    """Keep DNS records in sync with running containers"""
    return run_command(config_file=config, keep_records=keep_records, debug=debug)


@app.command()
def reconcile(
    config: Optional[Path] = config_option,
    debug: bool = debug_option,
):
    """Reconcile every backend once and exit"""
    return reconcile_command(config_file=config, debug=debug)


@app.command(name="list")
def list_records(
    config: Optional[Path] = config_option,
    show_all: bool = typer.Option(False, '--all', '-a', help='Show every record in the zone, not just this host\'s'),
    debug: bool = debug_option,
):
    """List the DNS records held by each backend"""
    return list_command(config_file=config, show_all=show_all, debug=debug)


@app.command()
def debug(
    config: Optional[Path] = config_option,
    debug: bool = debug_option,
):
    """Show configuration and test Docker and backend connectivity"""
    return debug_command(config_file=config, debug=debug)


def main():
    """Main entry point"""
    app()


if __name__ == "__main__":
    main()
