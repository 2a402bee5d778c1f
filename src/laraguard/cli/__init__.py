"""CLI entry point: Click group with global options."""

from __future__ import annotations

import logging

import click

from laraguard import __version__


@click.group()
@click.version_option(version=__version__, prog_name="laraguard")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help="Path to a laraguard.yaml file.",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """laraguard: static security analysis for Laravel applications."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose

    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _register_commands() -> None:
    from laraguard.cli.analyze import analyze  # noqa: F811
    from laraguard.cli.list import list_analyzers  # noqa: F811

    main.add_command(analyze)
    main.add_command(list_analyzers)


_register_commands()
