"""CLI application for selecting builds and copying their files."""

from pathlib import Path

import typer

from buildcopy.cli.commands.builds import app as builds_app
from buildcopy.cli.commands.copy import copy
from buildcopy.cli.common.context import build_app_context
from buildcopy.cli.common.logs import setup_logging
from buildcopy.cli.common.options import HomeOpt, VerboseOpt

app = typer.Typer(
    help="buildcopy - pick builds and copy their artifacts",
    no_args_is_help=True,
)


@app.callback()
def _init(
    ctx: typer.Context,
    home: Path | None = HomeOpt,
    verbose: bool = VerboseOpt,
):
    """Load settings and the build registry once per invocation."""
    ctx.obj = build_app_context(home, verbose=verbose)
    setup_logging(ctx.obj.settings.verbose)


app.add_typer(builds_app, name="builds", help="List builds / preview build selection.")
app.command("copy")(copy)


if __name__ == "__main__":
    app()
