import pytest
import yaml

from conftest import FakeHost
from kubelaunch.modules.runtime import (
    CRICTL_CONFIG_PATH,
    crictl_config_command,
    lookup_runtime,
    restart_selected_runtime,
    runtime_endpoints,
    stop_other_runtimes,
)

CRIO = "unix:///var/run/crio/crio.sock"


@pytest.mark.parametrize("name", ["crio", "cri-o"])
def test_crio_endpoints(name):
    assert runtime_endpoints(name) == {"runtime-endpoint": CRIO, "image-endpoint": CRIO}


def test_containerd_endpoints():
    sock = "unix:///run/containerd/containerd.sock"
    assert runtime_endpoints("containerd") == {"runtime-endpoint": sock, "image-endpoint": sock}


@pytest.mark.parametrize("name", ["", "docker", "rkt", "podman", "CRIO"])
def test_no_supplementary_config(name):
    assert runtime_endpoints(name) is None


def test_crictl_config_command_writes_yaml():
    command = crictl_config_command(runtime_endpoints("crio"))
    assert command.endswith(f"| sudo tee {CRICTL_CONFIG_PATH} >/dev/null")
    body = yaml.safe_dump(runtime_endpoints("crio"), default_flow_style=False, sort_keys=True)
    assert f"image-endpoint: {CRIO}" in body
    assert "image-endpoint" in command


def test_empty_runtime_means_docker():
    assert lookup_runtime("").name == "docker"
    assert lookup_runtime("cri-o").name == "crio"
    assert lookup_runtime("podman") is None


def test_stop_other_runtimes_keeps_selected():
    host = FakeHost()
    assert stop_other_runtimes(host, "crio") == []
    assert host.commands == [
        "sudo systemctl stop docker",
        "sudo systemctl stop docker.socket",
        "sudo systemctl stop rkt-api",
        "sudo systemctl stop rkt-metadata",
        "sudo systemctl stop containerd",
    ]


def test_stop_failure_is_reported_and_sweep_continues(caplog):
    host = FakeHost(fail=["sudo systemctl stop docker"])
    assert stop_other_runtimes(host, "containerd") == ["docker"]
    # docker.socket is skipped once docker fails, the other runtimes are still stopped
    assert host.commands == [
        "sudo systemctl stop docker",
        "sudo systemctl stop crio",
        "sudo systemctl stop rkt-api",
        "sudo systemctl stop rkt-metadata",
    ]
    assert "Error stopping docker" in caplog.text


def test_unknown_runtime_stops_nothing(caplog):
    host = FakeHost()
    assert stop_other_runtimes(host, "podman") == []
    assert host.commands == []
    assert "not a supported container runtime" in caplog.text


@pytest.mark.parametrize("name,service", [("crio", "crio"), ("cri-o", "crio"), ("containerd", "containerd")])
def test_restart_selected_runtime(name, service):
    host = FakeHost()
    assert restart_selected_runtime(host, name) is True
    assert host.commands == [f"sudo systemctl restart {service}"]


@pytest.mark.parametrize("name", ["", "docker", "rkt", "podman"])
def test_restart_not_needed(name):
    host = FakeHost()
    assert restart_selected_runtime(host, name) is False
    assert host.commands == []


def test_restart_failure_is_reported():
    host = FakeHost(fail=["sudo systemctl restart containerd"])
    assert restart_selected_runtime(host, "containerd") is False
