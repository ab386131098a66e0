"""Contracts between the start sequence and the machine drivers."""
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Union

from kubelaunch.config import machine_record
from kubelaunch.modules.models import MachineConfig
from kubelaunch.utils import write_file_atomic

logger = logging.getLogger("kubelaunch.drivers")

DOCKER_PORT = 2376


class Host(ABC):
    """A provisioned machine that commands can be run on."""

    def __init__(self, name: str):
        self.name = name

    @abstractmethod
    def get_ip(self) -> str:
        """IP address the cluster will advertise."""

    def get_url(self) -> str:
        """Docker-style endpoint of the machine, ``tcp://<ip>:2376``."""
        return f"tcp://{self.get_ip()}:{DOCKER_PORT}"

    @abstractmethod
    def run_command(self, command: str) -> str:
        """Run a shell command on the machine.

        Returns:
            str: Combined command output

        Raises:
            CommandError: On nonzero exit status or transport failure
        """

    @abstractmethod
    def copy_to(self, local_path: Union[str, Path], remote_path: str) -> None:
        """Copy a local file onto the machine (root owned)."""

    def mount(self, source: str, target: str) -> None:
        raise NotImplementedError(f"{type(self).__name__} does not support mounts")

    def unmount(self, target: str) -> None:
        raise NotImplementedError(f"{type(self).__name__} does not support mounts")


class HostProvisioner(ABC):
    """Creates, starts and finds machines for one driver."""

    driver_name = ""

    @abstractmethod
    def exists(self, name: str) -> bool:
        """Whether a machine called ``name`` has already been created."""

    @abstractmethod
    def start_host(self, name: str, config: MachineConfig) -> Host:
        """Create the machine if needed, start it and return a handle."""

    @abstractmethod
    def load_host(self, name: str, config: MachineConfig) -> Host:
        """Handle to an existing machine without starting it."""


class RecordedProvisioner(HostProvisioner):
    """Provisioner whose machines exist only as a record in the tool home."""

    def exists(self, name: str) -> bool:
        return machine_record(name).exists()

    def _record(self, name: str, config: MachineConfig) -> None:
        data = {"name": name, "driver": self.driver_name, "config": config.model_dump(mode="json")}
        write_file_atomic(machine_record(name), json.dumps(data, indent=4) + "\n")
        logger.debug(f"Recorded machine {name} ({self.driver_name})")
