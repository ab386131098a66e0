import logging

import typer

from kubelaunch.commands import cache, mount, profile, start
from kubelaunch.logging import level_for, setup_logging

app = typer.Typer()

# Add all commands
app.command("start")(start.start)
app.command("mount")(mount.mount)
app.add_typer(profile.app, name="profile")
app.add_typer(cache.app, name="cache")


# Global options callback
@app.callback()
def main(
    ctx: typer.Context,
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug logging"),
    verbosity: int = typer.Option(0, "--v", help="Log level verbosity (8 or more for debug)"),
):
    """kubelaunch - single-node Kubernetes clusters."""
    ctx.obj = {"debug": debug, "verbosity": verbosity}
    setup_logging(level_for(debug, verbosity))
    if debug:
        logging.getLogger("kubelaunch").debug("Debug mode enabled")
