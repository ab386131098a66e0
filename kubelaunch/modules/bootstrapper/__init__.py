"""Cluster bootstrappers."""
from pathlib import Path

from kubelaunch.errors import UnsupportedBootstrapperError
from kubelaunch.modules.drivers.base import Host
from kubelaunch.modules.models import KubernetesConfig

from .base import Bootstrapper
from .kubeadm import KubeadmBootstrapper


def get_cluster_bootstrapper(name: str, host: Host, k8s: KubernetesConfig, home: Path) -> Bootstrapper:
    """Return the bootstrapper called ``name`` bound to ``host``.

    Raises:
        UnsupportedBootstrapperError: For unknown names
    """
    if name == "kubeadm":
        return KubeadmBootstrapper(host, home, k8s.node_port)
    raise UnsupportedBootstrapperError(f"Unknown bootstrapper: {name}")


__all__ = ['Bootstrapper', 'KubeadmBootstrapper', 'get_cluster_bootstrapper']
