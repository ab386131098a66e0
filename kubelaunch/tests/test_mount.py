import os
import stat
import subprocess
import sys
import threading

import pytest

from conftest import FakeHost
from kubelaunch.modules import mount


def test_parse_mount_string():
    assert mount.parse_mount_string("/src/data:/mnt/data") == ("/src/data", "/mnt/data")
    source, target = mount.parse_mount_string("~/code:/code")
    assert source == os.path.expanduser("~/code")
    assert target == "/code"


@pytest.mark.parametrize("raw", ["/src", ":/dst", "/src:", ""])
def test_parse_mount_string_rejects(raw):
    with pytest.raises(ValueError):
        mount.parse_mount_string(raw)


def test_mount_command():
    assert mount.mount_command("/a:/b", 0) == [sys.executable, "-m", "kubelaunch", "mount", "--v=0", "/a:/b"]
    assert mount.mount_command("/a:/b", 8)[4] == "--v=1"


class FakePopen:
    calls = []

    def __init__(self, args, **kwargs):
        self.pid = 4242
        FakePopen.calls.append((args, kwargs))


@pytest.fixture
def popen(monkeypatch):
    FakePopen.calls = []
    monkeypatch.setattr(subprocess, "Popen", FakePopen)
    return FakePopen


def test_spawn_records_pid(popen, tmp_path):
    pid = mount.spawn_mount_helper("/a:/b", 0, tmp_path, profile="dev")

    assert pid == 4242
    pid_file = tmp_path / ".mount-process"
    assert pid_file.read_text() == "4242"
    assert stat.S_IMODE(pid_file.stat().st_mode) == 0o600
    assert mount.read_mount_pid(tmp_path) == 4242

    args, kwargs = popen.calls[0]
    assert args[-2:] == ["--v=0", "/a:/b"]
    assert kwargs["env"]["KUBELAUNCH_CHILD_PROCESS"] == "true"
    assert kwargs["env"]["KUBELAUNCH_PROFILE"] == "dev"
    assert kwargs["stdout"] is subprocess.DEVNULL
    assert kwargs["start_new_session"] is True


def test_spawn_verbose_shares_output(popen, tmp_path):
    mount.spawn_mount_helper("/a:/b", 8, tmp_path)
    _, kwargs = popen.calls[0]
    assert kwargs["stdout"] is None
    assert kwargs["stderr"] is None


def test_spawn_failure_propagates(monkeypatch, tmp_path):
    def fail(*args, **kwargs):
        raise FileNotFoundError("no interpreter")

    monkeypatch.setattr(subprocess, "Popen", fail)
    with pytest.raises(OSError):
        mount.spawn_mount_helper("/a:/b", 0, tmp_path)
    assert not (tmp_path / ".mount-process").exists()


def test_spawn_pid_record_failure_propagates(popen, monkeypatch, tmp_path):
    def fail(path, content, mode=None):
        raise OSError("read-only file system")

    monkeypatch.setattr(mount, "write_file_atomic", fail)
    with pytest.raises(OSError, match="read-only file system"):
        mount.spawn_mount_helper("/a:/b", 0, tmp_path)
    assert len(popen.calls) == 1
    assert mount.read_mount_pid(tmp_path) is None


def test_is_child_process(monkeypatch):
    assert not mount.is_child_process()
    monkeypatch.setenv("KUBELAUNCH_CHILD_PROCESS", "true")
    assert mount.is_child_process()


def test_serve_mount_unmounts_and_clears_own_pid(monkeypatch, tmp_path):
    monkeypatch.setattr(mount.signal, "signal", lambda *args: None)
    (tmp_path / ".mount-process").write_text(str(os.getpid()))
    host = FakeHost()
    stop = threading.Event()
    stop.set()

    mount.serve_mount(host, "/src", "/dst", tmp_path, stop=stop)

    assert host.mounts == [("/src", "/dst")]
    assert host.unmounts == ["/dst"]
    assert not (tmp_path / ".mount-process").exists()


def test_serve_mount_keeps_foreign_pid(monkeypatch, tmp_path):
    monkeypatch.setattr(mount.signal, "signal", lambda *args: None)
    (tmp_path / ".mount-process").write_text("1")
    stop = threading.Event()
    stop.set()

    mount.serve_mount(FakeHost(), "/src", "/dst", tmp_path, stop=stop)

    assert (tmp_path / ".mount-process").read_text() == "1"
