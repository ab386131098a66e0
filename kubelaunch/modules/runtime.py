"""Container runtime selection.

Only one container runtime may be active on the machine. The selected
runtime gets a crictl configuration pointing at its socket, every other
supported runtime is stopped, and runtimes that discover plugin or hook
directories at startup are restarted once bootstrapping has written them.
"""
import logging
import shlex
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import yaml

from kubelaunch.errors import CommandError
from kubelaunch.modules.drivers.base import Host

logger = logging.getLogger("kubelaunch.runtime")

CRIO_SOCKET = "unix:///var/run/crio/crio.sock"
CONTAINERD_SOCKET = "unix:///run/containerd/containerd.sock"
CRICTL_CONFIG_PATH = "/etc/crictl.yaml"


@dataclass(frozen=True)
class Runtime:
    name: str
    services: Tuple[str, ...]
    endpoint: Optional[str] = None
    restart_after_bootstrap: bool = False
    aliases: Tuple[str, ...] = ()


RUNTIMES: Tuple[Runtime, ...] = (
    Runtime("docker", ("docker", "docker.socket")),
    Runtime("crio", ("crio",), CRIO_SOCKET, restart_after_bootstrap=True, aliases=("cri-o",)),
    Runtime("rkt", ("rkt-api", "rkt-metadata")),
    Runtime("containerd", ("containerd",), CONTAINERD_SOCKET, restart_after_bootstrap=True),
)


def lookup_runtime(name: str) -> Optional[Runtime]:
    """Resolve a runtime name; empty means the default docker engine."""
    name = name or "docker"
    for runtime in RUNTIMES:
        if name == runtime.name or name in runtime.aliases:
            return runtime
    return None


def runtime_endpoints(name: str) -> Optional[Dict[str, str]]:
    """Socket endpoints crictl should use for ``name``.

    Returns:
        dict with ``runtime-endpoint`` and ``image-endpoint``, or None when the
        runtime needs no supplementary configuration
    """
    if not name:
        return None
    runtime = lookup_runtime(name)
    if runtime is None or runtime.endpoint is None:
        return None
    return {
        "runtime-endpoint": runtime.endpoint,
        "image-endpoint": runtime.endpoint,
    }


def crictl_config_command(endpoints: Dict[str, str]) -> str:
    """Shell command writing the crictl configuration on the machine."""
    content = yaml.safe_dump(endpoints, default_flow_style=False, sort_keys=True)
    return (
        f"sudo mkdir -p /etc && printf %s {shlex.quote(content)} "
        f"| sudo tee {CRICTL_CONFIG_PATH} >/dev/null"
    )


def stop_other_runtimes(host: Host, selected: str) -> List[str]:
    """Stop every supported runtime other than ``selected``.

    Failures are logged and do not stop the sweep. Returns the names of the
    runtimes that could not be stopped.
    """
    keep = lookup_runtime(selected)
    if keep is None:
        logger.warning(f"⚠️  {selected!r} is not a supported container runtime, leaving runtime services untouched")
        return []

    failed = []
    for runtime in RUNTIMES:
        if runtime is keep:
            continue
        try:
            for service in runtime.services:
                host.run_command(f"sudo systemctl stop {service}")
        except CommandError as e:
            logger.error(f"Error stopping {runtime.name}: {e}")
            failed.append(runtime.name)
    return failed


def restart_selected_runtime(host: Host, selected: str) -> bool:
    """Restart the selected runtime when it only scans its directories at startup.

    Returns:
        bool: True if a restart was issued and succeeded
    """
    runtime = lookup_runtime(selected)
    if runtime is None or not runtime.restart_after_bootstrap:
        return False

    logger.info(f"Restarting {runtime.name} runtime...")
    try:
        for service in runtime.services:
            host.run_command(f"sudo systemctl restart {service}")
    except CommandError as e:
        logger.error(f"Error restarting {runtime.name}: {e}")
        return False
    return True
