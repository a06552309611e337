"""Configuration inspection commands."""

from __future__ import annotations

from functools import partial
from pathlib import Path
from typing import Annotated

import typer

from rtp_sampler.cli.commands.common import load_config_or_exit, parse_mode
from rtp_sampler.cli.output import log_success, print_levels_table
from rtp_sampler.config import classify_level


def validate_config(
    config_path: Annotated[
        Path,
        typer.Argument(help="Path to generator configuration YAML file"),
    ],
) -> None:
    """Validate a generator configuration file."""
    config = load_config_or_exit(config_path)
    log_success("Configuration is valid!")
    typer.echo(f"Game ID: {config.game.id}")
    typer.echo(f"Source table: {config.source_table}")
    typer.echo(f"Per-spin bet: {config.bet.per_spin:g}")
    typer.echo(
        f"Levels: {len(config.levels.standard)} standard, {len(config.levels.purchase)} purchase"
    )


def show_levels(
    config_path: Annotated[
        Path,
        typer.Option("--config", "-c", help="Generator configuration YAML file"),
    ],
    mode: Annotated[
        str,
        typer.Option("--mode", "-m", help="standard or purchase"),
    ] = "standard",
) -> None:
    """List levels with their policy band and strategy variant."""
    config = load_config_or_exit(config_path)
    play_mode = parse_mode(mode)
    bands = config.band_table()
    classify = partial(classify_level, groups=config.strategy_groups())

    rows = []
    for level in config.level_specs(play_mode):
        band = bands.band_for(level.level_id)
        variant = classify(level)
        records, repetitions = config.family_plan(variant)
        rows.append(
            {
                "level": level.level_id,
                "target": level.target_ratio,
                "band": band.name,
                "max": band.max_ratio(level.target_ratio),
                "variant": variant.value,
                "records": records,
                "repetitions": repetitions,
            }
        )
    print_levels_table(rows, title=f"Game {config.game.id} {play_mode.value} levels")
