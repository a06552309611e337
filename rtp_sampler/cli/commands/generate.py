"""Generate command - build RTP datasets for every configured level."""

from __future__ import annotations

from functools import partial
from pathlib import Path
from typing import Annotated, Optional

import typer

from rtp_sampler.cli.commands.common import load_config_or_exit, parse_levels, parse_mode
from rtp_sampler.cli.output import (
    console,
    log_error,
    log_info,
    output_json,
    print_failure_summary,
)
from rtp_sampler.config import GeneratorConfig, PlayMode, StrategyVariant, classify_level
from rtp_sampler.engine import SelectionParams, Stage, TierRatios, generate_run_id
from rtp_sampler.models import LevelSpec
from rtp_sampler.orchestrator import LogChannel, TrialOrchestrator
from rtp_sampler.persistence import (
    DuckDBPoolSource,
    DuckDBResultSink,
    JsonFileSink,
    OutputSink,
    PoolFilter,
    load_pool,
)


def selection_params(config: GeneratorConfig) -> SelectionParams:
    """Map configuration sections onto strategy tuning."""
    stages = config.stage_ratios
    settings = config.settings
    return SelectionParams(
        stage1_min_ratio=stages.stage1_min_ratio,
        stage1_max_ratio=stages.stage1_max_ratio,
        win_top_ratio=stages.stage3_win_top_ratio,
        stages=tuple(
            Stage(s.ratio, s.min_multiplier, s.max_multiplier) for s in stages.stages
        ),
        nearest_tolerance=settings.nearest_tolerance,
        fill_candidate_limit=settings.fill_candidate_limit,
        max_top_up_passes=settings.max_top_up_passes,
        max_correction_swaps=settings.max_correction_swaps,
    )


def tier_ratios(config: GeneratorConfig) -> TierRatios:
    ratios = config.prize_ratios
    return TierRatios(
        big=ratios.big_prize, mega=ratios.mega_prize, super_mega=ratios.super_mega_prize
    )


def pool_filter_for(config: GeneratorConfig, mode: PlayMode) -> PoolFilter:
    if mode == PlayMode.PURCHASE:
        return PoolFilter.purchase(config.game.purchase_mode)
    return PoolFilter.standard(
        excluded_mode=config.game.purchase_mode, max_multiplier=config.source.max_multiplier
    )


def _fixed_variant(variant: StrategyVariant, level: LevelSpec) -> StrategyVariant:
    return variant


def _build_sink(
    config: GeneratorConfig, mode: PlayMode, output_format: str, output_dir: Path, run_id: str
) -> OutputSink:
    if output_format == "duckdb":
        return DuckDBResultSink(
            output_dir / config.output.database, table=config.output.table, run_id=run_id
        )
    if output_format == "json":
        purchase_mode = config.game.purchase_mode if mode == PlayMode.PURCHASE else None
        return JsonFileSink(output_dir, config.game.id, purchase_mode=purchase_mode)
    log_error(f"Unknown output format '{output_format}', expected 'json' or 'duckdb'")
    raise typer.Exit(1)


def generate(
    config_path: Annotated[
        Path,
        typer.Option("--config", "-c", help="Generator configuration YAML file"),
    ],
    mode: Annotated[
        str,
        typer.Option("--mode", "-m", help="standard or purchase"),
    ] = "standard",
    levels: Annotated[
        Optional[str],
        typer.Option("--levels", "-l", help="Comma-separated level ids (default: all)"),
    ] = None,
    variant: Annotated[
        str,
        typer.Option(
            "--variant",
            help="auto, baseline, staged, dynamic_ratio or high_rtp",
            case_sensitive=False,
        ),
    ] = "auto",
    repetitions: Annotated[
        Optional[int],
        typer.Option("--repetitions", "-r", help="Override trials per level", min=1),
    ] = None,
    workers: Annotated[
        Optional[int],
        typer.Option("--workers", "-w", help="Parallel trials (default: CPU count)", min=1),
    ] = None,
    database: Annotated[
        Optional[Path],
        typer.Option("--database", help="Override the record DuckDB file"),
    ] = None,
    output_dir: Annotated[
        Optional[Path],
        typer.Option("--output-dir", "-o", help="Override the output directory"),
    ] = None,
    output_format: Annotated[
        Optional[str],
        typer.Option("--format", "-f", help="json or duckdb"),
    ] = None,
    run_id: Annotated[
        Optional[str],
        typer.Option("--run-id", help="Fixed run id (reproducible seeds with a fixed clock)"),
    ] = None,
    quiet: Annotated[
        bool,
        typer.Option("--quiet", "-q", help="Only show warnings, errors and the summary"),
    ] = False,
) -> None:
    """Generate RTP datasets and print a JSON run summary to stdout."""
    config = load_config_or_exit(config_path)
    play_mode = parse_mode(mode)

    try:
        level_specs = config.level_specs(play_mode, parse_levels(levels))
    except KeyError as e:
        log_error(str(e.args[0]))
        raise typer.Exit(1) from None
    if not level_specs:
        log_error("No levels selected")
        raise typer.Exit(1)

    if variant.lower() == "auto":
        selector = partial(classify_level, groups=config.strategy_groups())
    else:
        try:
            fixed = StrategyVariant(variant.lower())
        except ValueError:
            log_error(f"Unknown strategy variant '{variant}'")
            raise typer.Exit(1) from None
        selector = partial(_fixed_variant, fixed)

    run_id = run_id or generate_run_id(f"game-{config.game.id}")
    pool_filter = pool_filter_for(config, play_mode)
    try:
        source = DuckDBPoolSource(
            database or config.source.database, config.source_table, lookup_filter=pool_filter
        )
    except FileNotFoundError as e:
        log_error(str(e))
        raise typer.Exit(1) from None
    with source:
        pool = load_pool(source, pool_filter)
    log_info(
        f"Loaded {config.source_table}: {len(pool.win)} win, {len(pool.profit)} profit, "
        f"{len(pool.no_win)} no-win records",
        quiet,
    )

    sink = _build_sink(
        config,
        play_mode,
        (output_format or config.output.format).lower(),
        output_dir or Path(config.output.directory),
        run_id,
    )
    repetition_plan: int | dict[int, int]
    if repetitions is not None:
        repetition_plan = repetitions
    else:
        repetition_plan = {
            level.level_id: config.family_plan(selector(level))[1] for level in level_specs
        }

    orchestrator = TrialOrchestrator(
        pool,
        sink,
        per_spin_bet=config.bet.per_spin,
        target_count=lambda v: config.family_plan(v)[0],
        tier_ratios=tier_ratios(config),
        bet_multiplier=config.bet_multiplier(play_mode),
        params=selection_params(config),
        bands=config.band_table(),
        run_id=run_id,
        max_workers=workers or config.settings.max_workers,
        log_channel=LogChannel(console, quiet=quiet),
        detail_limit=config.settings.failure_detail_limit,
    )
    log_info(f"Run {run_id}: {len(level_specs)} levels, {orchestrator.max_workers} workers", quiet)
    try:
        report = orchestrator.run(level_specs, repetition_plan, selector)
    finally:
        close = getattr(sink, "close", None)
        if close is not None:
            close()

    print_failure_summary(report.failures, quiet)
    output_json(
        {
            "run_id": report.run_id,
            "mode": play_mode.value,
            "trials": len(report.outcomes),
            "succeeded": report.succeeded,
            "failed": report.failed,
            "duration_s": round(report.duration_s, 3),
            "failures_by_level": report.failures["failures_by_level"],
        }
    )
    if not report.ok:
        raise typer.Exit(1)
