"""multidb CLI entrypoint."""

from __future__ import annotations

import time
from collections.abc import Iterable
from pathlib import Path

import click

from multidb_cli.shared.cli import CLIContext, common_cli_options, handle_cli_errors, pass_cli_context
from multidb_cli.shared.config import OUTPUT_FORMATS, SUPPORTED_DRIVERS
from multidb_cli.shared.exceptions import ConfigurationError

from . import render
from .dispatcher import QueryDispatcher
from .drivers import get_driver
from .targets import collect_targets
from .types import QueryParameters


@click.group(help="Run one query against many databases.")
@common_cli_options
@handle_cli_errors
def cli(cli_ctx: CLIContext) -> None:
    """Primary Click group for multidb commands."""
    cli_ctx.logger.debug(f"multidb initialised with config {cli_ctx.config.source_path}.")


@cli.command("run")
@click.argument("query", type=str, required=False)
@click.option(
    "--query-file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Read the query text from a file.",
)
@click.option(
    "--targets",
    "target_file",
    type=click.Path(path_type=str),
    help="YAML/JSON file listing the databases to query.",
)
@click.option(
    "-t",
    "--target",
    "inline_targets",
    multiple=True,
    metavar="SERVER/DATABASE",
    help="Add a target on the command line (repeatable).",
)
@click.option("--driver", type=click.Choice(SUPPORTED_DRIVERS), help="Database driver to use.")
@click.option("--connect-timeout", type=click.FloatRange(min=0), help="Connection timeout in seconds.")
@click.option("--command-timeout", type=click.FloatRange(min=0), help="Command timeout in seconds (0 = none).")
@click.option("--sequential/--parallel", default=None, help="Query targets one at a time.")
@click.option("--parallelism", type=click.IntRange(min=1), help="Maximum targets queried at once.")
@click.option(
    "--discard-results/--keep-results",
    default=None,
    help="Read every row but keep only field and row counts.",
)
@click.option(
    "--show-info-messages/--hide-info-messages",
    "show_info_messages",
    default=None,
    help="Append server informational messages as an extra table.",
)
@click.option("--format", "output_format", type=click.Choice(OUTPUT_FORMATS), help="Output format.")
@click.option("--show-nulls/--hide-nulls", default=None, help="Print NULL for null cells in tables.")
@click.option(
    "--output",
    "output_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Write results to this file instead of stdout.",
)
@pass_cli_context
@handle_cli_errors
def run_query(
    cli_ctx: CLIContext,
    query: str | None,
    query_file: Path | None,
    target_file: str | None,
    inline_targets: Iterable[str],
    driver: str | None,
    connect_timeout: float | None,
    command_timeout: float | None,
    sequential: bool | None,
    parallelism: int | None,
    discard_results: bool | None,
    show_info_messages: bool | None,
    output_format: str | None,
    show_nulls: bool | None,
    output_path: Path | None,
) -> None:
    """Execute QUERY against every target and print the result tables."""
    query_text = _resolve_query(query, query_file)
    targets = collect_targets(target_file, inline_targets)

    config = cli_ctx.config.with_execution(
        connect_timeout=connect_timeout,
        command_timeout=command_timeout,
        sequential=sequential,
        parallelism=parallelism,
        discard_results=discard_results,
        show_information_messages=show_info_messages,
    )
    params = QueryParameters.from_settings(query_text, config.execution)
    database_driver = get_driver(driver or config.driver, config)
    cli_ctx.logger.debug(
        f"Running against {len(targets)} target(s) with driver '{database_driver.name}' "
        f"({'sequential' if params.sequential else f'parallelism {params.parallelism}'})."
    )

    dispatcher = QueryDispatcher(database_driver, params, logger=cli_ctx.logger)
    started = time.perf_counter()
    results = dispatcher.run(targets)
    elapsed_ms = (time.perf_counter() - started) * 1000
    cli_ctx.logger.info(f"Query results : {elapsed_ms:.3f} milliseconds.")

    summary = f"{len(results)} of {len(targets)} targets returned results."
    if len(results) == len(targets):
        cli_ctx.logger.success(summary)
    else:
        cli_ctx.logger.warning(summary)

    render_kwargs = {
        "output_format": output_format or config.output.format,
        "logger": cli_ctx.logger,
        "show_nulls": config.output.show_nulls if show_nulls is None else show_nulls,
    }
    if output_path is None:
        render.render_results(results, **render_kwargs)
        return
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with output_path.open("w", encoding="utf-8") as handle:
        render.render_results(results, stream=handle, **render_kwargs)
    cli_ctx.logger.info(f"Results written to {output_path}.")


@cli.command("targets")
@click.option("--targets", "target_file", type=click.Path(path_type=str), help="YAML/JSON target list.")
@click.option("-t", "--target", "inline_targets", multiple=True, metavar="SERVER/DATABASE")
@pass_cli_context
@handle_cli_errors
def list_targets(cli_ctx: CLIContext, target_file: str | None, inline_targets: Iterable[str]) -> None:
    """List the targets a run would query."""
    targets = collect_targets(target_file, inline_targets)
    cli_ctx.logger.debug(f"Parsed {len(targets)} target(s).")
    render.render_targets(targets)


def _resolve_query(query: str | None, query_file: Path | None) -> str:
    if query and query_file:
        raise ConfigurationError("Give either QUERY or --query-file, not both.")
    if query_file:
        text = query_file.read_text(encoding="utf-8")
    else:
        text = query or ""
    if not text.strip():
        raise click.ClickException("Query text must not be empty.")
    return text


def main() -> None:
    """Entry point for console_scripts."""
    cli()


if __name__ == "__main__":  # pragma: no cover
    main()
