"""Bootstrapper contract."""
from abc import ABC, abstractmethod

from kubelaunch.modules.models import KubernetesConfig


class Bootstrapper(ABC):
    """Installs and controls the control plane on a provisioned machine."""

    @abstractmethod
    def update_cluster(self, k8s: KubernetesConfig) -> None:
        """Move configuration files into the machine."""

    @abstractmethod
    def setup_certs(self, k8s: KubernetesConfig) -> None:
        """Generate cluster certificates and fetch the client credentials."""

    @abstractmethod
    def start_cluster(self, k8s: KubernetesConfig) -> None:
        """Initialise a fresh control plane."""

    @abstractmethod
    def restart_cluster(self, k8s: KubernetesConfig) -> None:
        """Bring an already initialised control plane back up."""

    @abstractmethod
    def get_kubelet_status(self) -> str:
        """``Running``, ``Stopped`` or ``Error``."""

    @abstractmethod
    def get_api_server_status(self, ip: str) -> str:
        """``Running``, ``Stopped`` or ``Error``."""
