import typer

from kubelaunch import config as cfg
from kubelaunch.errors import ProfileLoadError
from kubelaunch.modules.profile import ProfileStore, list_profiles, serialize

app = typer.Typer(help="Inspect saved profiles")


@app.command("list")
def list_command():
    """List saved profiles."""
    names = list_profiles()
    if not names:
        typer.echo("No profiles found.")
        return
    for name in names:
        typer.echo(name)


@app.command("get")
def get_command(name: str = typer.Argument(cfg.DEFAULT_PROFILE, help="Profile name")):
    """Show the saved configuration of a profile."""
    try:
        doc = ProfileStore.for_profile(name).load()
    except ProfileLoadError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(1)
    if doc is None:
        typer.echo(f"❌ Profile '{name}' not found.", err=True)
        raise typer.Exit(1)
    typer.echo(serialize(doc), nl=False)
