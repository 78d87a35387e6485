"""
Debug command implementation for ddns-sd
"""
import logging
from pathlib import Path
from typing import Optional

import docker
import requests
import typer
import yaml
from docker.errors import DockerException

from ..config import ConfigError
from ..dns.base import DNSError
from ..factory import BackendFactory
from .common import console, load_config

logger = logging.getLogger(__name__)


def debug_command(config_file: Optional[Path] = None, debug: bool = False) -> None:
    """Show the effective configuration and test Docker and backend connectivity"""
    console.print("[bold blue]Loading configuration...")
    config = load_config(config_file, debug)

    console.print("\n[bold]Configuration:")
    console.print(yaml.safe_dump(config.masked(), sort_keys=False))

    ok = True

    console.print("[bold blue]Testing Docker connection...")
    try:
        client = docker.DockerClient(base_url=config.docker_host)
        client.ping()
        console.print(f"[green]Docker at {config.docker_host} is reachable "
                      f"({len(client.containers.list())} running containers)")
    except (DockerException, requests.exceptions.RequestException) as e:
        console.print(f"[bold red]Docker at {config.docker_host} is not reachable: {e}")
        ok = False

    for name in config.backends:
        console.print(f"\n[bold blue]Testing backend {name}...")
        try:
            backend = BackendFactory.create(name, config)
            records = backend.records_in_zone()
        except (ConfigError, DNSError) as e:
            console.print(f"[bold red]Backend {name} failed: {e}")
            ok = False
            continue
        console.print(f"[green]Backend {name} ({backend.base_domain}) returned {len(records)} records")

    if not ok:
        raise typer.Exit(code=1)
