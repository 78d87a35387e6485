"""
Shared setup for command implementations
"""
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from ..config import Config, ConfigError
from ..utils import setup_logging

console = Console()
logger = logging.getLogger(__name__)


def load_config(config_file: Optional[Path] = None, debug: bool = False) -> Config:
    """Load configuration and set up logging, exiting on configuration errors"""
    try:
        config = Config.load(config_file=config_file)
    except ConfigError as e:
        setup_logging(debug=debug)
        console.print(f"[bold red]Configuration error: {e}")
        raise typer.Exit(code=1)

    setup_logging(config.log_level, debug=debug, permitted=config.debug_loggers)
    return config
