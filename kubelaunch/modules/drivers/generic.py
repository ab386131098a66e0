"""Existing machines reached over SSH with paramiko."""
import logging
import os
import socket
import time
from pathlib import Path
from typing import Optional, Union

import paramiko

from kubelaunch.config import Config
from kubelaunch.errors import CommandError
from kubelaunch.modules.drivers.base import Host, RecordedProvisioner
from kubelaunch.modules.models import MachineConfig

logger = logging.getLogger("kubelaunch.drivers.generic")


class SSHHost(Host):
    """SSH connection to a machine that already runs an OS."""

    def __init__(self, name: str, ip: str, username: str, key_path: str = "", port: int = 22,
                 timeout: int = 10):
        super().__init__(name)
        self.ip = ip
        self.username = username
        self.key_path = os.path.expanduser(key_path) if key_path else None
        self.port = port
        self.timeout = timeout
        self._client: Optional[paramiko.SSHClient] = None

    def _connect(self) -> paramiko.SSHClient:
        if self._client is not None and self._client.get_transport() is not None \
                and self._client.get_transport().is_active():
            return self._client
        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        client.connect(
            self.ip,
            port=self.port,
            username=self.username,
            key_filename=self.key_path,
            timeout=self.timeout,
        )
        self._client = client
        return client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def get_ip(self) -> str:
        return self.ip

    def run_command(self, command: str) -> str:
        try:
            client = self._connect()
            _, stdout, stderr = client.exec_command(command, timeout=Config.COMMAND_TIMEOUT)
            exit_status = stdout.channel.recv_exit_status()
            output = stdout.read().decode()
            error = stderr.read().decode()
        except (socket.error, paramiko.SSHException) as e:
            self.close()
            raise CommandError(command, 255, f"SSH {type(e).__name__}: {e}") from e

        if exit_status != 0:
            raise CommandError(command, exit_status, error or output)
        return output

    def copy_to(self, local_path: Union[str, Path], remote_path: str) -> None:
        staging = f"/tmp/{Path(local_path).name}"
        try:
            with self._connect().open_sftp() as sftp:
                sftp.put(str(local_path), staging)
        except (socket.error, paramiko.SSHException) as e:
            self.close()
            raise CommandError(f"sftp put {local_path}", 255, str(e)) from e
        if staging != remote_path:
            remote_dir = str(Path(remote_path).parent)
            self.run_command(f"sudo mkdir -p {remote_dir} && sudo mv {staging} {remote_path}")


class GenericProvisioner(RecordedProvisioner):
    driver_name = "generic"

    def _host(self, name: str, config: MachineConfig) -> SSHHost:
        if not config.ssh_ip_address:
            raise ValueError("The generic driver requires --ssh-ip-address")
        return SSHHost(
            name,
            config.ssh_ip_address,
            config.ssh_user,
            key_path=config.ssh_key,
            port=config.ssh_port,
        )

    def start_host(self, name: str, config: MachineConfig) -> Host:
        host = self._host(name, config)
        start = time.time()
        host.run_command("true")
        logger.info(f"SSH connection to {config.ssh_user}@{config.ssh_ip_address} verified "
                    f"in {time.time() - start:.1f}s")
        self._record(name, config)
        return host

    def load_host(self, name: str, config: MachineConfig) -> Host:
        return self._host(name, config)
