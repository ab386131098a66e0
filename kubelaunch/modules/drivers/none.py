"""The ``none`` driver: control plane components run on this machine."""
import logging
import subprocess
from pathlib import Path
from typing import Union

from kubelaunch.config import Config
from kubelaunch.errors import CommandError
from kubelaunch.modules.drivers.base import Host, RecordedProvisioner
from kubelaunch.modules.models import MachineConfig
from kubelaunch.utils import get_local_ip

logger = logging.getLogger("kubelaunch.drivers.none")


class LocalHost(Host):

    def get_ip(self) -> str:
        return get_local_ip()

    def run_command(self, command: str) -> str:
        logger.debug(f"$ {command}")
        try:
            result = subprocess.run(
                command,
                shell=True,
                capture_output=True,
                text=True,
                timeout=Config.COMMAND_TIMEOUT,
            )
        except subprocess.TimeoutExpired as e:
            raise CommandError(command, -1, f"timed out after {e.timeout} seconds") from e
        if result.returncode != 0:
            raise CommandError(command, result.returncode, result.stderr or result.stdout)
        return result.stdout

    def copy_to(self, local_path: Union[str, Path], remote_path: str) -> None:
        remote_dir = str(Path(remote_path).parent)
        self.run_command(f"sudo mkdir -p {remote_dir} && sudo cp {local_path} {remote_path}")

    def mount(self, source: str, target: str) -> None:
        logger.info(f"The none driver shares the host filesystem, {source} needs no mount")

    def unmount(self, target: str) -> None:
        pass


class NoneProvisioner(RecordedProvisioner):
    driver_name = "none"

    def start_host(self, name: str, config: MachineConfig) -> Host:
        self._record(name, config)
        return LocalHost(name)

    def load_host(self, name: str, config: MachineConfig) -> Host:
        return LocalHost(name)
