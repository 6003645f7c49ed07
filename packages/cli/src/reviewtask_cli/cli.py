"""CLI entry point for reviewtask.

Commands:
  fetch    — fetch PR reviews and turn them into local tasks
  status   — task counts per PR
  show     — list tasks, or show one task in detail
  update   — change a task's status or notes
  init     — write a .reviewtask.yml for this repository

create_cli() builds a new command tree on every call. Nothing about a run
survives on module-level objects, so tests and repeated invocations in the
same process never see each other's state.
"""

from __future__ import annotations

import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from reviewtask_cli.commands.fetch import fetch_cmd
from reviewtask_cli.commands.init import init_cmd
from reviewtask_cli.commands.show import show_cmd
from reviewtask_cli.commands.status import status_cmd
from reviewtask_cli.commands.update import update_cmd
from reviewtask_cli.context import AppContext

_PACKAGE_LOGGERS = ("reviewtask_core", "reviewtask_store", "reviewtask_cli")

_ROOT_HELP = """reviewtask fetches GitHub Pull Request reviews and turns every
actionable review comment into a task you can track locally.

\b
Examples:
  reviewtask fetch        # Check reviews for current branch's PR
  reviewtask fetch 123    # Check reviews for PR #123
  reviewtask status       # Task counts for every fetched PR
  reviewtask show         # List open tasks
  reviewtask update t1-ab12 done
"""


def _configure_logging(verbose: bool) -> None:
    if not verbose:
        return
    handler = RichHandler(console=Console(stderr=True), show_path=False)
    for name in _PACKAGE_LOGGERS:
        logger = logging.getLogger(name)
        logger.setLevel(logging.DEBUG)
        if not any(isinstance(h, RichHandler) for h in logger.handlers):
            logger.addHandler(handler)


def create_cli() -> click.Group:
    """Build a fresh `reviewtask` command tree."""

    @click.group(
        name="reviewtask",
        help=_ROOT_HELP,
        invoke_without_command=True,
        context_settings={"help_option_names": ["-h", "--help"]},
    )
    @click.version_option(package_name="reviewtask", prog_name="reviewtask")
    @click.option(
        "--config",
        "config_path",
        default=".reviewtask.yml",
        show_default=True,
        help="Path to the configuration file.",
        envvar="REVIEWTASK_CONFIG",
    )
    @click.option("--verbose", "-v", is_flag=True, help="Log debug output to stderr.")
    @click.pass_context
    def root(ctx: click.Context, config_path: str, verbose: bool):
        _configure_logging(verbose)
        app = AppContext(config_path)
        ctx.obj = app
        ctx.call_on_close(app.close)

        if ctx.invoked_subcommand is None:
            click.echo(ctx.get_help())

    root.add_command(fetch_cmd)
    root.add_command(status_cmd)
    root.add_command(show_cmd)
    root.add_command(update_cmd)
    root.add_command(init_cmd)
    return root


def main() -> None:
    """Console script entry point."""
    create_cli()(prog_name="reviewtask")
