"""kubectl configuration for a profile."""
import base64
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List

import yaml

from kubelaunch.utils import write_file_atomic

logger = logging.getLogger("kubelaunch.kubeconfig")


@dataclass(frozen=True)
class KubeConfigSetup:
    """What to write into the kubeconfig for one cluster."""
    cluster_name: str
    cluster_server_address: str
    client_certificate: Path
    client_key: Path
    certificate_authority: Path
    kubeconfig_file: Path
    keep_context: bool = False
    embed_certs: bool = False


def server_address(url: str, port: int) -> str:
    """Turn the driver URL ``tcp://<ip>:2376`` into the apiserver address."""
    address = url.replace("tcp://", "https://")
    return address.replace(":2376", f":{port}")


def read_kubeconfig(path: Path) -> Dict[str, Any]:
    """Existing kubeconfig, or an empty skeleton if there is none."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        data = {}
    data.setdefault("apiVersion", "v1")
    data.setdefault("kind", "Config")
    data.setdefault("preferences", {})
    for key in ("clusters", "users", "contexts"):
        if data.get(key) is None:
            data[key] = []
    data.setdefault("current-context", "")
    return data


def _upsert(entries: List[Dict[str, Any]], name: str, field: str, value: Dict[str, Any]) -> None:
    for entry in entries:
        if entry.get("name") == name:
            entry[field] = value
            return
    entries.append({"name": name, field: value})


def _b64(path: Path) -> str:
    return base64.b64encode(Path(path).read_bytes()).decode("ascii")


def setup_kubeconfig(setup: KubeConfigSetup) -> Dict[str, Any]:
    """Add or update the cluster, user and context for ``setup.cluster_name``.

    Args:
        setup: Cluster connection details

    Returns:
        dict: The kubeconfig as written
    """
    data = read_kubeconfig(setup.kubeconfig_file)
    name = setup.cluster_name

    cluster: Dict[str, Any] = {"server": setup.cluster_server_address}
    user: Dict[str, Any] = {}
    if setup.embed_certs:
        cluster["certificate-authority-data"] = _b64(setup.certificate_authority)
        user["client-certificate-data"] = _b64(setup.client_certificate)
        user["client-key-data"] = _b64(setup.client_key)
    else:
        cluster["certificate-authority"] = str(setup.certificate_authority)
        user["client-certificate"] = str(setup.client_certificate)
        user["client-key"] = str(setup.client_key)

    _upsert(data["clusters"], name, "cluster", cluster)
    _upsert(data["users"], name, "user", user)
    _upsert(data["contexts"], name, "context", {"cluster": name, "user": name})

    if not setup.keep_context:
        data["current-context"] = name

    write_file_atomic(
        setup.kubeconfig_file,
        yaml.safe_dump(data, default_flow_style=False, sort_keys=False),
        mode=0o600,
    )
    logger.info(f"✅ Kubeconfig updated: {setup.kubeconfig_file}")
    return data
