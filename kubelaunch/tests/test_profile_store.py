import json
import os
import stat

import pytest
from jsonschema import validate

from kubelaunch.errors import ProfileLoadError
from kubelaunch.modules.models import ExtraOption, KubernetesConfig, MachineConfig, ProfileDocument
from kubelaunch.modules.profile import ProfileStore, list_profiles

PROFILE_SCHEMA = {
    "type": "object",
    "properties": {
        "machine_config": {
            "type": "object",
            "properties": {
                "disk_size_mb": {"type": "integer", "minimum": 2000},
                "vm_driver": {"type": "string"},
                "memory": {"type": "integer"},
                "cpus": {"type": "integer"},
            },
            "required": ["disk_size_mb", "vm_driver", "memory", "cpus"],
        },
        "kubernetes_config": {
            "oneOf": [
                {"type": "null"},
                {
                    "type": "object",
                    "properties": {
                        "kubernetes_version": {"type": "string", "pattern": "^v\\d+\\.\\d+\\.\\d+$"},
                        "extra_options": {"type": "array"},
                    },
                    "required": ["kubernetes_version", "node_ip", "extra_options"],
                },
            ]
        },
    },
    "required": ["machine_config", "kubernetes_config"],
}


def full_document():
    return ProfileDocument(
        machine_config=MachineConfig(memory=4096, cpus=4, docker_env=("HTTP_PROXY=http://proxy:3128",)),
        kubernetes_config=KubernetesConfig(
            node_ip="192.168.64.10",
            apiserver_ips=("10.0.0.1",),
            extra_options=(
                ExtraOption.parse("scheduler.v=3"),
                ExtraOption.parse("apiserver.v=2"),
                ExtraOption.parse("kubelet.max-pods=80"),
            ),
        ),
    )


def test_load_missing_profile_returns_none(tmp_path):
    assert ProfileStore(tmp_path / "nope" / "config.json").load() is None


def test_save_then_load_round_trip(tmp_path):
    store = ProfileStore(tmp_path / "profiles" / "dev" / "config.json")
    doc = full_document()
    store.save(doc)
    loaded = store.load()
    assert loaded == doc
    assert [str(o) for o in loaded.kubernetes_config.extra_options] == [
        "scheduler.v=3", "apiserver.v=2", "kubelet.max-pods=80",
    ]


def test_saved_bytes_are_stable(tmp_path):
    store = ProfileStore(tmp_path / "config.json")
    store.save(full_document())
    first = store.path.read_bytes()
    store.save(store.load())
    assert store.path.read_bytes() == first
    assert b'\n    "machine_config": {\n        "iso_url"' in first


def test_first_save_has_null_kubernetes_config(tmp_path):
    store = ProfileStore(tmp_path / "config.json")
    store.save(ProfileDocument(machine_config=MachineConfig()))
    data = json.loads(store.path.read_text())
    assert data["kubernetes_config"] is None
    validate(instance=data, schema=PROFILE_SCHEMA)


def test_saved_document_matches_schema(tmp_path):
    store = ProfileStore(tmp_path / "config.json")
    store.save(full_document())
    validate(instance=json.loads(store.path.read_text()), schema=PROFILE_SCHEMA)


def test_saved_file_permissions(tmp_path):
    store = ProfileStore(tmp_path / "profiles" / "dev" / "config.json")
    store.save(full_document())
    assert stat.S_IMODE(store.path.stat().st_mode) == 0o600
    assert stat.S_IMODE(store.path.parent.stat().st_mode) == 0o700


def test_failed_save_keeps_previous_file(tmp_path, monkeypatch):
    store = ProfileStore(tmp_path / "config.json")
    store.save(ProfileDocument(machine_config=MachineConfig()))
    before = store.path.read_bytes()

    def fail_replace(src, dst):
        raise OSError("power cut")

    monkeypatch.setattr(os, "replace", fail_replace)
    with pytest.raises(OSError):
        store.save(full_document())

    assert store.path.read_bytes() == before
    assert [p.name for p in tmp_path.iterdir()] == ["config.json"]


@pytest.mark.parametrize("content", ["", "{not json", '{"kubernetes_config": null}'])
def test_undecodable_profile_raises(tmp_path, content):
    path = tmp_path / "config.json"
    path.write_text(content)
    with pytest.raises(ProfileLoadError):
        ProfileStore(path).load()


def test_for_profile_and_list(home):
    ProfileStore.for_profile("beta").save(ProfileDocument(machine_config=MachineConfig()))
    ProfileStore.for_profile("alpha").save(ProfileDocument(machine_config=MachineConfig()))
    assert ProfileStore.for_profile("beta").path == home / "profiles" / "beta" / "config.json"
    assert list_profiles() == ["alpha", "beta"]
