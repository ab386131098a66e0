from typing import List

import typer

from kubelaunch.modules import images

app = typer.Typer(help="Manage images loaded into the cluster at the end of start")


@app.command("add")
def add(image_names: List[str] = typer.Argument(..., help="Images to cache")):
    """Cache images locally and load them on every start."""
    try:
        images.cache_images(image_names)
    except RuntimeError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(1)
    images.add_to_config(image_names)
    for image in image_names:
        typer.echo(f"✅ Cached {image}")


@app.command("delete")
def delete(image_names: List[str] = typer.Argument(..., help="Images to remove from the cache")):
    """Remove images from the local cache."""
    images.delete_from_config(image_names)
    for image in image_names:
        tarball = images.image_tarball(image)
        if tarball.exists():
            tarball.unlink()
        typer.echo(f"🗑️  Removed {image}")


@app.command("list")
def list_command():
    """List cached images."""
    for image in images.cached_images_in_config():
        typer.echo(image)
