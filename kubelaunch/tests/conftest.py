from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

import pytest

from kubelaunch.errors import CommandError
from kubelaunch.modules import health
from kubelaunch.modules.bootstrapper.base import Bootstrapper
from kubelaunch.modules.drivers.base import Host, HostProvisioner
from kubelaunch.modules.models import KubernetesConfig, MachineConfig, StartOptions
from kubelaunch.modules.profile import ProfileStore
from kubelaunch.modules.start import StartSequencer

HOST_IP = "192.168.64.10"


@pytest.fixture(autouse=True)
def home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Every test gets its own tool home and kubeconfig."""
    home = tmp_path / ".kubelaunch"
    monkeypatch.setenv("KUBELAUNCH_HOME", str(home))
    monkeypatch.setenv("KUBECONFIG", str(tmp_path / "kubeconfig"))
    monkeypatch.delenv("CHANGE_KUBELAUNCH_NONE_USER", raising=False)
    monkeypatch.delenv("KUBELAUNCH_CHILD_PROCESS", raising=False)
    monkeypatch.delenv("KUBELAUNCH_PROFILE", raising=False)
    return home


class FakeHost(Host):
    """Records commands; exact commands in ``fail`` raise CommandError."""

    def __init__(self, name: str = "kubelaunch", ip: str = HOST_IP,
                 outputs: Optional[Dict[str, str]] = None, fail: Iterable[str] = ()):
        super().__init__(name)
        self.ip = ip
        self.outputs = outputs or {}
        self.fail = set(fail)
        self.commands: List[str] = []
        self.copies: List[Tuple[str, str]] = []
        self.mounts: List[Tuple[str, str]] = []
        self.unmounts: List[str] = []

    def get_ip(self) -> str:
        return self.ip

    def run_command(self, command: str) -> str:
        self.commands.append(command)
        if command in self.fail:
            raise CommandError(command, 1, "unit failed")
        return self.outputs.get(command, "")

    def copy_to(self, local_path, remote_path: str) -> None:
        self.copies.append((Path(local_path).read_text(), remote_path))

    def mount(self, source: str, target: str) -> None:
        self.mounts.append((source, target))

    def unmount(self, target: str) -> None:
        self.unmounts.append(target)


class FakeProvisioner(HostProvisioner):
    driver_name = "fake"

    def __init__(self, host: FakeHost, exists: bool = False, start_failures: int = 0):
        self.host = host
        self._exists = exists
        self.start_failures = start_failures
        self.start_calls = 0

    def exists(self, name: str) -> bool:
        return self._exists

    def start_host(self, name: str, config: MachineConfig) -> Host:
        self.start_calls += 1
        if self.start_calls <= self.start_failures:
            raise RuntimeError("machine is not ready")
        return self.host

    def load_host(self, name: str, config: MachineConfig) -> Host:
        return self.host


class FakeBootstrapper(Bootstrapper):
    """Writes fake client credentials; methods named in ``fail`` raise."""

    def __init__(self, home: Path, kubelet: str = health.RUNNING, apiserver: str = health.RUNNING,
                 fail: Iterable[str] = ()):
        self.home = Path(home)
        self.kubelet = kubelet
        self.apiserver = apiserver
        self.fail = set(fail)
        self.calls: List[str] = []
        self.k8s: Optional[KubernetesConfig] = None
        self.apiserver_queries: List[str] = []

    def _call(self, name: str, k8s: Optional[KubernetesConfig] = None) -> None:
        self.calls.append(name)
        if k8s is not None:
            self.k8s = k8s
        if name in self.fail:
            raise RuntimeError(f"{name} exploded")

    def update_cluster(self, k8s):
        self._call("update_cluster", k8s)

    def setup_certs(self, k8s):
        self._call("setup_certs", k8s)
        self.home.mkdir(parents=True, exist_ok=True)
        for name in ("ca.crt", "client.crt", "client.key"):
            (self.home / name).write_text(f"fake {name}")

    def start_cluster(self, k8s):
        self._call("start_cluster", k8s)

    def restart_cluster(self, k8s):
        self._call("restart_cluster", k8s)

    def get_kubelet_status(self):
        self.calls.append("get_kubelet_status")
        return self.kubelet

    def get_api_server_status(self, ip):
        self.apiserver_queries.append(ip)
        return self.apiserver


class RecordingStore(ProfileStore):
    """ProfileStore that also keeps every saved document."""

    def __init__(self, path, fail_saves: bool = False):
        super().__init__(path)
        self.saved = []
        self.fail_saves = fail_saves

    def save(self, doc):
        self.saved.append(doc)
        if self.fail_saves:
            raise OSError("disk full")
        super().save(doc)


def make_options(home: Path, kubeconfig: Path, driver: str = "virtualbox", runtime: str = "",
                 version: str = "v1.30.4", **kwargs) -> StartOptions:
    return StartOptions(
        profile="kubelaunch",
        kubeconfig_path=kubeconfig,
        home=home,
        machine=MachineConfig(vm_driver=driver, container_runtime=runtime),
        kubernetes=KubernetesConfig(kubernetes_version=version, container_runtime=runtime),
        **kwargs,
    )


class Harness:
    """A sequencer wired to fakes, with everything it touched kept for assertions."""

    def __init__(self, options: StartOptions, exists: bool = False, host_fail: Iterable[str] = (),
                 start_failures: int = 0, store: Optional[ProfileStore] = None, **bootstrapper_kwargs):
        self.options = options
        self.host = FakeHost(fail=host_fail)
        self.provisioner = FakeProvisioner(self.host, exists=exists, start_failures=start_failures)
        self.bootstrapper = FakeBootstrapper(options.home, **bootstrapper_kwargs)
        self.store = store or RecordingStore(options.home / "profiles" / options.profile / "config.json")
        self.sleeps: List[float] = []
        self.cached: List[Tuple[str, str]] = []
        self.loaded_hosts: List[Host] = []
        self.spawned: List[tuple] = []
        self.drivers: List[str] = []
        self.cache_error: Optional[Exception] = None
        self.load_error: Optional[Exception] = None
        self.spawn_error: Optional[Exception] = None

    def _provisioner_factory(self, driver):
        self.drivers.append(driver)
        return self.provisioner

    def _image_cacher(self, version, bootstrapper):
        self.cached.append((version, bootstrapper))
        if self.cache_error:
            raise self.cache_error

    def _image_loader(self, host):
        self.loaded_hosts.append(host)
        if self.load_error:
            raise self.load_error

    def _spawner(self, mount_string, verbosity, home, profile=None):
        self.spawned.append((mount_string, verbosity, home, profile))
        if self.spawn_error:
            raise self.spawn_error
        return 4242

    def sequencer(self) -> StartSequencer:
        return StartSequencer(
            self.options,
            store=self.store,
            provisioner_factory=self._provisioner_factory,
            bootstrapper_factory=lambda name, host, k8s, home: self.bootstrapper,
            image_cacher=self._image_cacher,
            cached_image_loader=self._image_loader,
            mount_spawner=self._spawner,
            sleep=self.sleeps.append,
        )

    def run(self):
        return self.sequencer().run()


@pytest.fixture
def kubeconfig(tmp_path: Path) -> Path:
    return tmp_path / "kubeconfig"
