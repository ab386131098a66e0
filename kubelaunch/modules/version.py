"""Kubernetes version downgrade protection."""
import logging
from typing import Optional

import typer
from packaging.version import InvalidVersion, Version

from kubelaunch.config import DEFAULT_KUBERNETES_VERSION, VERSION_PREFIX
from kubelaunch.modules.models import ProfileDocument

logger = logging.getLogger("kubelaunch.version")


def parse_version(raw: str) -> Version:
    """Parse ``vMAJOR.MINOR.PATCH`` (the prefix is optional).

    Raises:
        InvalidVersion: If the value is not a three component version
    """
    text = raw.strip()
    if text.startswith(VERSION_PREFIX):
        text = text[len(VERSION_PREFIX):]
    version = Version(text)
    if len(version.release) != 3:
        raise InvalidVersion(f"{raw!r} is not a MAJOR.MINOR.PATCH version")
    return version


def guard_version(previous: Optional[ProfileDocument], requested: str) -> str:
    """Return the version to run, never older than the one already deployed.

    Args:
        previous: Profile loaded before this run, if any
        requested: Version asked for on the command line

    Returns:
        str: ``requested`` or, on an attempted downgrade, the previous version
    """
    selected = requested or DEFAULT_KUBERNETES_VERSION
    if previous is None or previous.kubernetes_config is None:
        return selected

    try:
        old = parse_version(previous.kubernetes_config.kubernetes_version)
        new = parse_version(selected)
    except InvalidVersion as e:
        logger.error(f"Error parsing version semver: {e}")
        return selected

    if new < old:
        selected = f"{VERSION_PREFIX}{old}"
        typer.echo(f"Kubernetes version downgrade is not supported. Using version: {selected}")
    return selected
