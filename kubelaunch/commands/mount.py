import logging

import typer

from kubelaunch import config as cfg
from kubelaunch.config import PROFILE_ENV, home_dir
from kubelaunch.errors import KubelaunchError
from kubelaunch.logging import setup_logging
from kubelaunch.modules.drivers import get_provisioner
from kubelaunch.modules.mount import is_child_process, parse_mount_string, serve_mount
from kubelaunch.modules.profile import ProfileStore

logger = logging.getLogger("kubelaunch.commands.mount")


def mount(
    mount_string: str = typer.Argument(
        f"{cfg.DEFAULT_MOUNT_DIR}:{cfg.DEFAULT_MOUNT_ENDPOINT}", help="<source directory>:<target directory>"
    ),
    verbosity: int = typer.Option(0, "--v", help="Log level verbosity (1 for debug)"),
    profile: str = typer.Option(cfg.DEFAULT_PROFILE, "--profile", "-p", envvar=PROFILE_ENV, help="Profile name"),
):
    """Mount a host folder into the machine until interrupted."""
    if verbosity:
        setup_logging(logging.DEBUG)
    if is_child_process():
        logger.debug("Running as the mount helper of a start run")

    try:
        source, target = parse_mount_string(mount_string)
    except ValueError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(1)

    try:
        doc = ProfileStore.for_profile(profile).load()
        if doc is None:
            typer.echo(f"❌ Profile '{profile}' not found. Run 'kubelaunch start' first.", err=True)
            raise typer.Exit(1)
        host = get_provisioner(doc.machine_config.vm_driver).load_host(profile, doc.machine_config)
        serve_mount(host, source, target, home_dir())
    except (KubelaunchError, NotImplementedError) as e:
        typer.echo(f"❌ Mount failed: {e}", err=True)
        raise typer.Exit(1)
