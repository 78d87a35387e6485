"""
Management commands implementation for ddns-sd (list and reconcile)
"""
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.table import Table

from ..config import ConfigError
from ..dns.base import DNSError
from ..factory import BackendFactory
from ..system import System
from .common import console, load_config

logger = logging.getLogger(__name__)


def list_command(config_file: Optional[Path] = None, show_all: bool = False, debug: bool = False) -> None:
    """
    List the records each backend holds for this host

    With ``show_all``, every publishable record in the zone is shown.
    """
    config = load_config(config_file, debug)
    try:
        backends = BackendFactory.create_all(config)
    except ConfigError as e:
        console.print(f"[bold red]Configuration error: {e}")
        raise typer.Exit(code=1)

    system = System(config, backends=backends)
    failed = False
    for backend in backends:
        console.print(f"[bold blue]Fetching DNS records from {backend.name}...")
        try:
            records = backend.records_in_zone()
        except DNSError as e:
            console.print(f"[bold red]Failed to fetch DNS records from {backend.name}: {e}")
            failed = True
            continue

        if not show_all:
            records = [rr for rr in records if system.owns(rr)]
        if not records:
            console.print(f"[yellow]No DNS records found in {backend.name}")
            continue

        table = Table(title=f"DNS Records in {backend.name} ({backend.base_domain})")
        table.add_column("Name", style="cyan")
        table.add_column("Type", style="magenta")
        table.add_column("Value", style="green")
        table.add_column("TTL", style="blue")
        for rr in sorted(records, key=lambda r: (str(r.name), r.type)):
            table.add_row(str(rr.name), rr.type, rr.value, str(rr.ttl))
        console.print(table)

    if failed:
        raise typer.Exit(code=1)


def reconcile_command(config_file: Optional[Path] = None, debug: bool = False) -> None:
    """Run one full reconciliation of every backend and exit"""
    config = load_config(config_file, debug)
    try:
        system = System(config)
    except ConfigError as e:
        console.print(f"[bold red]Configuration error: {e}")
        raise typer.Exit(code=1)

    host_record = config.host_dns_record
    if host_record is not None:
        for backend in system.backends:
            backend.publish(host_record)
    system.reconcile_all()
    console.print("[bold green]Reconciliation complete")
