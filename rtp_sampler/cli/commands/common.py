"""Helpers shared by CLI commands."""

from __future__ import annotations

from pathlib import Path

import typer
from pydantic import ValidationError

from rtp_sampler.cli.output import log_error
from rtp_sampler.config import GeneratorConfig, PlayMode, load_config


def load_config_or_exit(config_path: Path) -> GeneratorConfig:
    """Load the config, reporting problems and exiting with code 1."""
    try:
        return load_config(config_path)
    except FileNotFoundError as e:
        log_error(str(e))
        raise typer.Exit(1) from None
    except ValidationError as e:
        log_error("Configuration validation failed:")
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            typer.echo(f"  • {loc}: {error['msg']}", err=True)
        raise typer.Exit(1) from None
    except ValueError as e:
        log_error(str(e))
        raise typer.Exit(1) from None


def parse_mode(value: str) -> PlayMode:
    try:
        return PlayMode(value.lower())
    except ValueError:
        log_error(f"Unknown mode '{value}', expected 'standard' or 'purchase'")
        raise typer.Exit(1) from None


def parse_levels(value: str | None) -> list[int] | None:
    """Parse ``"1,2,15"`` into level ids; None means all levels."""
    if not value:
        return None
    try:
        return [int(part) for part in value.split(",") if part.strip()]
    except ValueError:
        log_error(f"Invalid level list '{value}', expected comma-separated integers")
        raise typer.Exit(1) from None
