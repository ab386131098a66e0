import base64
import stat

import pytest
import yaml

from kubelaunch.modules.kubeconfig import KubeConfigSetup, server_address, setup_kubeconfig


@pytest.fixture
def certs(tmp_path):
    paths = {}
    for name in ("ca.crt", "client.crt", "client.key"):
        path = tmp_path / name
        path.write_bytes(f"-----{name}-----".encode())
        paths[name] = path
    return paths


def make_setup(certs, kubeconfig, **kwargs):
    return KubeConfigSetup(
        cluster_name="kubelaunch",
        cluster_server_address="https://192.168.64.10:8443",
        client_certificate=certs["client.crt"],
        client_key=certs["client.key"],
        certificate_authority=certs["ca.crt"],
        kubeconfig_file=kubeconfig,
        **kwargs,
    )


def test_server_address():
    assert server_address("tcp://192.168.64.10:2376", 8443) == "https://192.168.64.10:8443"


def test_creates_new_kubeconfig(certs, kubeconfig):
    setup_kubeconfig(make_setup(certs, kubeconfig))
    data = yaml.safe_load(kubeconfig.read_text())
    assert data["current-context"] == "kubelaunch"
    assert data["clusters"] == [{
        "name": "kubelaunch",
        "cluster": {
            "server": "https://192.168.64.10:8443",
            "certificate-authority": str(certs["ca.crt"]),
        },
    }]
    assert data["contexts"] == [{"name": "kubelaunch", "context": {"cluster": "kubelaunch", "user": "kubelaunch"}}]
    assert data["users"][0]["user"]["client-key"] == str(certs["client.key"])
    assert stat.S_IMODE(kubeconfig.stat().st_mode) == 0o600


def test_merge_keeps_unrelated_entries(certs, kubeconfig):
    kubeconfig.write_text(yaml.safe_dump({
        "apiVersion": "v1",
        "kind": "Config",
        "clusters": [{"name": "prod", "cluster": {"server": "https://prod:6443"}}],
        "users": [{"name": "prod", "user": {"token": "secret"}}],
        "contexts": [{"name": "prod", "context": {"cluster": "prod", "user": "prod"}}],
        "current-context": "prod",
    }))

    setup_kubeconfig(make_setup(certs, kubeconfig))
    setup_kubeconfig(make_setup(certs, kubeconfig))

    data = yaml.safe_load(kubeconfig.read_text())
    assert [c["name"] for c in data["clusters"]] == ["prod", "kubelaunch"]
    assert data["users"][0] == {"name": "prod", "user": {"token": "secret"}}
    assert data["current-context"] == "kubelaunch"


def test_keep_context(certs, kubeconfig):
    kubeconfig.write_text(yaml.safe_dump({"current-context": "prod"}))
    setup_kubeconfig(make_setup(certs, kubeconfig, keep_context=True))
    data = yaml.safe_load(kubeconfig.read_text())
    assert data["current-context"] == "prod"
    assert data["contexts"][0]["name"] == "kubelaunch"


def test_embed_certs(certs, kubeconfig):
    setup_kubeconfig(make_setup(certs, kubeconfig, embed_certs=True))
    data = yaml.safe_load(kubeconfig.read_text())
    cluster = data["clusters"][0]["cluster"]
    user = data["users"][0]["user"]
    assert base64.b64decode(cluster["certificate-authority-data"]) == b"-----ca.crt-----"
    assert base64.b64decode(user["client-key-data"]) == b"-----client.key-----"
    assert "client-certificate" not in user


def test_missing_cert_with_embed_fails(certs, kubeconfig):
    certs["client.key"].unlink()
    with pytest.raises(FileNotFoundError):
        setup_kubeconfig(make_setup(certs, kubeconfig, embed_certs=True))
    assert not kubeconfig.exists()
