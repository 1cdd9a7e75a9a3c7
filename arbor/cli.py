"""Command-line interface for Arbor.

This module defines the CLI commands using Click framework.

Commands:
- build: Build the site into the destination directory.
- run: Run a script registered by the project's _config.py.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import click

from . import __version__
from .config import load_config, load_setup
from .errors import BuildFailure, ConfigurationError, ScriptError
from .site import Site


def _configure_logging(quiet: bool) -> None:
    logging.basicConfig(
        level=logging.WARNING if quiet else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _save_metrics(site: Site, file: Path | None) -> None:
    if file is not None:
        site.metrics.save(file)


def _create_site(project_root: Path, **overrides) -> Site:
    """Create the site from arbor.yaml, CLI overrides and _config.py."""
    site = Site(load_config(project_root, **overrides))
    load_setup(site)
    return site


@click.group()
@click.version_option(version=__version__, prog_name="arbor")
def cli():
    """Arbor static site builder."""


@cli.command()
@click.option("--dev", is_flag=True, help="Build drafts too")
@click.option("--quiet", is_flag=True, help="Only report warnings and errors")
@click.option("--location", help="Public URL of the site (overrides arbor.yaml)")
@click.option("--metrics", is_flag=True, help="Print phase timings")
@click.option(
    "--metrics-file",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Write phase timings to a JSON file",
)
@click.option("--src", help="Source directory (overrides arbor.yaml)")
@click.option("--dest", help="Destination directory (overrides arbor.yaml)")
def build(
    dev: bool,
    quiet: bool,
    location: str | None,
    metrics: bool,
    metrics_file: Path | None,
    src: str | None,
    dest: str | None,
):
    """Build the site into the destination directory."""
    project_root = Path.cwd()
    _configure_logging(quiet)
    try:
        site = _create_site(
            project_root,
            dev=dev or None,
            quiet=quiet or None,
            location=location,
            metrics=metrics or None,
            src=src,
            dest=dest,
        )
        result = asyncio.run(site.build())
    except ConfigurationError as exc:
        raise click.ClickException(str(exc)) from None
    except ScriptError as exc:
        raise click.ClickException(str(exc)) from None
    except BuildFailure as exc:
        _save_metrics(site, metrics_file)
        click.echo(click.style("Build failed:", fg="red", bold=True), err=True)
        for error in exc.errors:
            click.echo(click.style(f"  File: {error.source_path}", fg="yellow"), err=True)
            click.echo(click.style(f"  Error: {error.message}", fg="white"), err=True)
        raise SystemExit(1) from None

    _save_metrics(site, metrics_file)
    if result.cancelled:
        click.echo("Build cancelled")
    else:
        click.echo(f"Built {len(result.pages)} pages into {result.output_dir}")


@cli.command()
@click.argument("name")
@click.option("--quiet", is_flag=True, help="Only report warnings and errors")
def run(name: str, quiet: bool):
    """Run a script (or a shell command) in the project."""
    project_root = Path.cwd()
    _configure_logging(quiet)
    try:
        site = _create_site(project_root)
    except ConfigurationError as exc:
        raise click.ClickException(str(exc)) from None
    if not asyncio.run(site.run(name)):
        click.echo(click.style(f"Script failed: {name}", fg="red", bold=True), err=True)
        raise SystemExit(1)


def main():
    """Entry point for the CLI application."""
    cli()
