"""Machines managed by the ``multipass`` CLI."""
import json
import logging
import subprocess
from pathlib import Path
from typing import Any, Dict, List, Union

from kubelaunch.config import Config
from kubelaunch.errors import CommandError
from kubelaunch.modules.drivers.base import Host, HostProvisioner
from kubelaunch.modules.models import MachineConfig

logger = logging.getLogger("kubelaunch.drivers.multipass")


def _multipass(*args: str, check: bool = True, timeout: int = None) -> subprocess.CompletedProcess:
    cmd = ["multipass", *args]
    logger.debug(f"$ {' '.join(cmd)}")
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout or Config.COMMAND_TIMEOUT,
        )
    except subprocess.TimeoutExpired as e:
        raise CommandError(" ".join(cmd), -1, f"timed out after {e.timeout} seconds") from e
    except FileNotFoundError as e:
        raise CommandError(" ".join(cmd), 127, "multipass is not installed") from e
    if check and result.returncode != 0:
        raise CommandError(" ".join(cmd), result.returncode, result.stderr or result.stdout)
    return result


def machine_info(name: str) -> Dict[str, Any]:
    """``multipass info`` for one instance.

    Raises:
        CommandError: If the instance does not exist
    """
    result = _multipass("info", name, "--format", "json")
    data = json.loads(result.stdout)
    return data["info"][name]


class MultipassHost(Host):

    def get_ip(self) -> str:
        info = machine_info(self.name)
        all_ips = info.get("ipv4", [])
        # Convert to list if it's a string
        ip_list: List[str] = [all_ips] if isinstance(all_ips, str) else list(all_ips)
        valid_ips = [ip for ip in ip_list if ip]
        if not valid_ips:
            raise RuntimeError(f"No IPs found for {self.name}")
        return valid_ips[0]

    def run_command(self, command: str) -> str:
        result = _multipass("exec", self.name, "--", "bash", "-c", command, check=False)
        if result.returncode != 0:
            raise CommandError(command, result.returncode, result.stderr or result.stdout)
        return result.stdout

    def copy_to(self, local_path: Union[str, Path], remote_path: str) -> None:
        staging = f"/tmp/{Path(local_path).name}"
        _multipass("transfer", str(local_path), f"{self.name}:{staging}")
        if staging != remote_path:
            remote_dir = str(Path(remote_path).parent)
            self.run_command(f"sudo mkdir -p {remote_dir} && sudo mv {staging} {remote_path}")

    def mount(self, source: str, target: str) -> None:
        _multipass("mount", source, f"{self.name}:{target}")

    def unmount(self, target: str) -> None:
        _multipass("umount", f"{self.name}:{target}")


class MultipassProvisioner(HostProvisioner):
    driver_name = "multipass"

    def exists(self, name: str) -> bool:
        result = _multipass("info", name, "--format", "json", check=False)
        return result.returncode == 0

    def start_host(self, name: str, config: MachineConfig) -> Host:
        if not self.exists(name):
            logger.info(f"ℹ️  VM {name} not found. Launching new instance...")
            _multipass(
                "launch", config.iso_url,
                "--name", name,
                "--cpus", str(config.cpus),
                "--memory", f"{config.memory}M",
                "--disk", f"{config.disk_size_mb}M",
            )
            logger.info(f"✅ Launched: {name}")
        else:
            state = machine_info(name).get("state", "")
            if state != "Running":
                logger.info(f"Starting existing VM {name} (state: {state})...")
                _multipass("start", name)
        return MultipassHost(name)

    def load_host(self, name: str, config: MachineConfig) -> Host:
        return MultipassHost(name)
