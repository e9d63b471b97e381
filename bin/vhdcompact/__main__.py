from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

import click

from vhdcompact.config import Config, default_config_path
from vhdcompact.formatting import format_bytes, format_image_line
from vhdcompact.locator import ImageLocator
from vhdcompact.logging_setup import configure_logging
from vhdcompact.orchestrator import Orchestrator
from vhdcompact.privilege import is_elevated

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class CliContext:
    config: Config


def confirm_compaction() -> bool:
    try:
        return click.confirm(
            "This shuts down ALL running WSL distributions (and Docker Desktop's) and compacts their disk images.\n"
            "Continue?",
            default=False,
        )
    except click.Abort:
        return False


@click.group()
@click.option(
    "--config",
    "config_path",
    metavar="CONFIG",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Read configuration from CONFIG (default: %APPDATA%\\vhd-compact\\config.yaml)",
)
@click.option(
    "--root",
    "roots",
    multiple=True,
    metavar="DIR",
    type=click.Path(file_okay=False, path_type=Path),
    help="Search DIR for disk images instead of the configured roots (repeatable)",
)
@click.option("--debug/--no-debug", help="Turn on debugging")
@click.option("--log-to-console", is_flag=True, help="Log output to console, even if logging to a file is requested")
@click.option("--log", metavar="LOGFILE", help="Log to LOGFILE", type=click.Path(dir_okay=False, writable=True))
@click.pass_context
def cli(
    ctx: click.Context,
    config_path: Optional[Path],
    roots: Tuple[Path, ...],
    debug: bool,
    log_to_console: bool,
    log: Optional[str],
):
    """Reclaim host disk space used by WSL2 virtual disk images."""
    configure_logging(debug=debug, log_file=log, log_to_console=log_to_console)
    config = Config.load(config_path or default_config_path(os.environ))
    ctx.obj = CliContext(config=config.with_cli_overrides(search_roots=list(roots)))


@cli.command()
@click.option("--force", is_flag=True, help="Don't ask for confirmation before shutting down WSL")
@click.option(
    "--grace-seconds",
    type=click.FloatRange(min=0),
    metavar="SECONDS",
    help="Wait SECONDS after shutting down WSL before compacting",
)
@click.option("--no-native", is_flag=True, help="Skip Optimize-VHD and go straight to diskpart")
@click.pass_obj
def run(context: CliContext, force: bool, grace_seconds: Optional[float], no_native: bool):
    """Shut down WSL and compact every disk image found. Needs Administrator privileges."""
    config = context.config.with_cli_overrides(
        shutdown_grace_seconds=grace_seconds,
        native_enabled=False if no_native else None,
    )
    orchestrator = Orchestrator(
        config,
        is_elevated=is_elevated,
        request_consent=confirm_compaction,
        force=force,
    )
    result = orchestrator.run()
    sys.exit(result.exit_code)


@cli.command(name="list")
@click.pass_obj
def list_images(context: CliContext):
    """List disk images that would be compacted, without touching WSL."""
    config = context.config
    locator = ImageLocator(config.resolved_search_roots(), image_filename=config.discovery.image_filename)
    images = locator.discover()
    if not images:
        click.echo("No disk images found in: " + ", ".join(str(root) for root in locator.roots))
        return
    for image in images:
        click.echo(format_image_line(image))
    total = sum(image.size_bytes_before for image in images)
    click.echo(f"{len(images)} image(s), {format_bytes(total)} in total")


def main():
    cli(prog_name="vhd-compact")  # pylint: disable=unexpected-keyword-arg,no-value-for-parameter


if __name__ == "__main__":
    main()
