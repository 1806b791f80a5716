"""
n8n Registry Refresh CLI - Main entry point.

Rebuilds the local node registry cache:
- node-registry-official.json      (slim index for lookups)
- node-registry-community.json     (community nodes index)
- node-registry-properties.jsonl   (node properties, one line per node)
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

import click

from .config import get_settings
from .errors import CacheWriteError, RegistryTransportError
from .models import RefreshSummary
from .observability import setup_logging
from .pipeline import RefreshPipeline


def print_summary(summary: RefreshSummary) -> None:
    """Print the run summary to stdout."""
    by_strategy = summary.overrides_by_strategy
    click.echo("==> Done! Registry caches updated:")
    for artifact in summary.artifacts:
        click.echo(f"    {artifact}")
    click.echo(f"    Official nodes:    {summary.official_total} (of {summary.official_fetched} fetched)")
    click.echo(f"    Community nodes:   {summary.community_total} (of {summary.community_fetched} fetched)")
    click.echo(
        f"    Version overrides: {summary.overrides_total} "
        f"({by_strategy.get('dynamic', 0)} dynamic, {by_strategy.get('static', 0)} static), "
        f"{summary.versions_updated} differ from the API"
    )
    for stats in summary.packages:
        if stats.error:
            click.echo(f"      {stats.package}: skipped ({stats.error})")
        else:
            click.echo(
                f"      {stats.package}: {stats.resolved}/{stats.files} resolved, "
                f"{stats.failed} unresolved"
            )
    click.echo(f"    Property records:  {summary.property_records}")
    if summary.dropped_records:
        click.echo(f"    Dropped records without a name: {summary.dropped_records}")
    if summary.schema_warnings:
        click.echo(f"    Malformed property trees skipped: {summary.schema_warnings}")


@click.command()
@click.option(
    "--output-dir", "-o",
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory receiving the cache files",
)
@click.option(
    "--packages-dir",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Existing node_modules to scan instead of a temporary npm install",
)
@click.option(
    "--no-dynamic", is_flag=True,
    help="Never load node modules; use static extraction only",
)
@click.option(
    "--workers",
    type=click.IntRange(min=1),
    help="Concurrent node file probes per package",
)
@click.option(
    "--log-format",
    type=click.Choice(["json", "text"]),
    help="Log output format",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
@click.option("-q", "--quiet", is_flag=True, help="Suppress output")
def main(
    output_dir: Optional[Path],
    packages_dir: Optional[Path],
    no_dynamic: bool,
    workers: Optional[int],
    log_format: Optional[str],
    verbose: bool,
    quiet: bool,
):
    """
    Refresh the cached n8n node registry.

    Fetches the official and community registries, reads real node versions
    from the installed n8n packages and overwrites the three cache files.

    Examples:

        n8n-registry-refresh

        n8n-registry-refresh -o ./references --packages-dir ./node_modules
    """
    settings = get_settings()

    level = None
    if verbose:
        level = "DEBUG"
    elif quiet:
        level = "ERROR"
    setup_logging(level=level, fmt=log_format)

    updates = {}
    if output_dir is not None:
        updates["output_dir"] = output_dir
    if packages_dir is not None:
        updates["packages_dir"] = packages_dir
    if no_dynamic:
        updates["dynamic_probe"] = False
    if workers is not None:
        updates["resolver_workers"] = workers
    if updates:
        settings = settings.model_copy(update=updates)

    try:
        summary = RefreshPipeline(settings).run()
    except RegistryTransportError as e:
        click.echo(f"Error: registry fetch failed, cache left unchanged: {e}", err=True)
        sys.exit(1)
    except CacheWriteError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if not quiet:
        print_summary(summary)


if __name__ == "__main__":
    main()
