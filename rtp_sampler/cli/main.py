"""RTP Sampler CLI - Main entry point."""

import typer
from typing_extensions import Annotated

from rtp_sampler import __version__

app = typer.Typer(
    name="rtp-sampler",
    help="RTP Sampler - Generate outcome datasets that hit configured RTP levels",
    add_completion=True,
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        from rtp_sampler.cli.output import console

        console.print(f"[bold]RTP Sampler[/bold] v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit",
        ),
    ] = False,
) -> None:
    """RTP Sampler CLI - concurrent RTP-constrained dataset generation."""
    pass


# Import commands after app is defined to avoid circular imports
from rtp_sampler.cli.commands.config_cmds import show_levels, validate_config
from rtp_sampler.cli.commands.data import import_results, load_records
from rtp_sampler.cli.commands.generate import generate

app.command(name="generate", help="Generate datasets for configured RTP levels")(generate)
app.command(name="validate-config", help="Validate a generator configuration file")(validate_config)
app.command(name="levels", help="List levels with policy band and strategy")(show_levels)
app.command(name="import-results", help="Import generated JSON results into DuckDB")(import_results)
app.command(name="load-records", help="Load historical outcome records into DuckDB")(load_records)


if __name__ == "__main__":
    app()
