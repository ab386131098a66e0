"""kubeadm bootstrapper.

Drives kubeadm phases on the machine through the host command channel.
Kubernetes binaries are expected to be present on the machine image.
"""
import base64
import json
import logging
import tempfile
from pathlib import Path
from typing import Any, Dict, List

import requests
import yaml

from kubelaunch.config import Config, image_cache_dir
from kubelaunch.errors import CommandError
from kubelaunch.modules import health
from kubelaunch.modules.bootstrapper.base import Bootstrapper
from kubelaunch.modules.drivers.base import Host
from kubelaunch.modules.images import images_for_bootstrapper, load_images
from kubelaunch.modules.models import KubernetesConfig
from kubelaunch.modules.runtime import runtime_endpoints
from kubelaunch.utils import write_file_atomic

logger = logging.getLogger("kubelaunch.bootstrapper.kubeadm")

KUBEADM_CONFIG = "/var/lib/kubelaunch/kubeadm.yaml"
KUBELET_DROPIN = "/etc/systemd/system/kubelet.service.d/20-kubelaunch.conf"
DEFAULT_CNI_CONFIG = "/etc/cni/net.d/k8s.conf"
CERTS_DIR = "/var/lib/kubelaunch/certs"
ETCD_DATA_DIR = "/var/lib/kubelaunch/etcd"
ADMIN_CONF = "/etc/kubernetes/admin.conf"
DOCKER_CRI_SOCKET = "unix:///var/run/cri-dockerd.sock"

PREFLIGHT_IGNORES = (
    "DirAvailable--etc-kubernetes-manifests",
    "DirAvailable--var-lib-kubelaunch-etcd",
    "FileAvailable--etc-kubernetes-manifests-kube-apiserver.yaml",
    "FileAvailable--etc-kubernetes-manifests-kube-controller-manager.yaml",
    "FileAvailable--etc-kubernetes-manifests-kube-scheduler.yaml",
    "FileAvailable--etc-kubernetes-manifests-etcd.yaml",
    "Port-10250",
    "Swap",
    "NumCPU",
    "Mem",
)

DEFAULT_CNI = {
    "cniVersion": "0.3.0",
    "name": "rkt.kubernetes.io",
    "type": "bridge",
    "bridge": "mybridge",
    "mtu": 1460,
    "addIf": "true",
    "isGateway": True,
    "ipMasq": True,
    "ipam": {
        "type": "host-local",
        "subnet": "10.1.0.0/16",
        "gateway": "10.1.0.1",
        "routes": [{"dst": "0.0.0.0/0"}],
    },
}


def cri_socket_for(k8s: KubernetesConfig) -> str:
    if k8s.cri_socket:
        return k8s.cri_socket
    endpoints = runtime_endpoints(k8s.container_runtime)
    if endpoints:
        return endpoints["runtime-endpoint"]
    return DOCKER_CRI_SOCKET


def _with_feature_gates(args: Dict[str, str], k8s: KubernetesConfig) -> Dict[str, str]:
    if k8s.feature_gates:
        args = {"feature-gates": k8s.feature_gates, **args}
    return args


def render_kubeadm_config(k8s: KubernetesConfig) -> str:
    """The multi-document kubeadm configuration for ``k8s``."""
    endpoint = f"{k8s.node_ip}:{k8s.node_port}"
    sans: List[str] = [k8s.apiserver_name, *k8s.apiserver_names, *(str(ip) for ip in k8s.apiserver_ips)]
    sans += [k8s.node_ip, "localhost", "127.0.0.1"]

    init = {
        "apiVersion": "kubeadm.k8s.io/v1beta3",
        "kind": "InitConfiguration",
        "localAPIEndpoint": {"advertiseAddress": k8s.node_ip, "bindPort": k8s.node_port},
        "nodeRegistration": {
            "name": k8s.node_name,
            "criSocket": cri_socket_for(k8s),
            "kubeletExtraArgs": _with_feature_gates(
                {"node-ip": k8s.node_ip, **k8s.extra_args_for("kubelet")}, k8s
            ),
        },
    }
    cluster: Dict[str, Any] = {
        "apiVersion": "kubeadm.k8s.io/v1beta3",
        "kind": "ClusterConfiguration",
        "kubernetesVersion": k8s.kubernetes_version,
        "controlPlaneEndpoint": endpoint,
        "certificatesDir": CERTS_DIR,
        "networking": {"dnsDomain": k8s.dns_domain, "serviceSubnet": k8s.service_cidr},
        "apiServer": {
            "certSANs": list(dict.fromkeys(s for s in sans if s)),
            "extraArgs": _with_feature_gates(k8s.extra_args_for("apiserver"), k8s),
        },
        "controllerManager": {
            "extraArgs": _with_feature_gates(k8s.extra_args_for("controller-manager"), k8s),
        },
        "scheduler": {
            "extraArgs": _with_feature_gates(k8s.extra_args_for("scheduler"), k8s),
        },
        "etcd": {"local": {"dataDir": ETCD_DATA_DIR, "extraArgs": k8s.extra_args_for("etcd")}},
    }
    docs = [init, cluster]

    proxy_args = k8s.extra_args_for("proxy")
    if proxy_args:
        # kube-proxy is configured by file only; options are copied verbatim
        docs.append({
            "apiVersion": "kubeproxy.config.k8s.io/v1alpha1",
            "kind": "KubeProxyConfiguration",
            **proxy_args,
        })
    return yaml.safe_dump_all(docs, default_flow_style=False, sort_keys=False)


def render_kubelet_dropin(k8s: KubernetesConfig) -> str:
    flags = [f"--node-ip={k8s.node_ip}", f"--hostname-override={k8s.node_name}"]
    if k8s.network_plugin:
        flags.append(f"--network-plugin={k8s.network_plugin}")
    return "[Service]\nEnvironment=\"KUBELET_EXTRA_ARGS=" + " ".join(flags) + "\"\n"


class KubeadmBootstrapper(Bootstrapper):
    """Bootstrapper driving kubeadm through ``host.run_command``."""

    def __init__(self, host: Host, home: Path, apiserver_port: int):
        self.host = host
        self.home = Path(home)
        self.apiserver_port = apiserver_port

    def _kubeadm(self, args: str) -> str:
        return self.host.run_command(f"sudo kubeadm {args} --config {KUBEADM_CONFIG}")

    def update_cluster(self, k8s: KubernetesConfig) -> None:
        files = {
            KUBEADM_CONFIG: render_kubeadm_config(k8s),
            KUBELET_DROPIN: render_kubelet_dropin(k8s),
        }
        if k8s.enable_default_cni:
            files[DEFAULT_CNI_CONFIG] = json.dumps(DEFAULT_CNI, indent=2) + "\n"

        if k8s.should_load_cached_images:
            try:
                load_images(
                    self.host,
                    images_for_bootstrapper(k8s.kubernetes_version, "kubeadm"),
                    image_cache_dir(),
                )
            except (OSError, CommandError) as e:
                logger.error(f"Unable to load cached images: {e}")

        with tempfile.TemporaryDirectory(prefix="kubelaunch-") as tmp:
            for index, (remote, content) in enumerate(files.items()):
                local = Path(tmp) / f"{index}-{Path(remote).name}"
                local.write_text(content, encoding="utf-8")
                logger.debug(f"Copying {remote} into {self.host.name}")
                self.host.copy_to(local, remote)

        self.host.run_command("sudo systemctl daemon-reload && sudo systemctl enable kubelet")

    def setup_certs(self, k8s: KubernetesConfig) -> None:
        self._kubeadm("init phase certs all")
        self._kubeadm("init phase kubeconfig admin")
        admin = yaml.safe_load(self.host.run_command(f"sudo cat {ADMIN_CONF}")) or {}
        try:
            cluster = admin["clusters"][0]["cluster"]
            user = admin["users"][0]["user"]
            credentials = {
                "ca.crt": cluster["certificate-authority-data"],
                "client.crt": user["client-certificate-data"],
                "client.key": user["client-key-data"],
            }
        except (KeyError, IndexError, TypeError) as e:
            raise RuntimeError(f"Unexpected admin kubeconfig on {self.host.name}: missing {e}") from e

        for name, data in credentials.items():
            write_file_atomic(self.home / name, base64.b64decode(data), mode=0o600)
        logger.info(f"✅ Client credentials written to {self.home}")

    def start_cluster(self, k8s: KubernetesConfig) -> None:
        ignores = ",".join(PREFLIGHT_IGNORES)
        self._kubeadm(f"init --ignore-preflight-errors={ignores}")
        self.host.run_command(
            f"sudo kubectl --kubeconfig={ADMIN_CONF} taint nodes --all "
            "node-role.kubernetes.io/control-plane- || true"
        )

    def restart_cluster(self, k8s: KubernetesConfig) -> None:
        for phase in (
            "certs all",
            "kubeconfig all",
            "kubelet-start",
            "control-plane all",
            "etcd local",
        ):
            self._kubeadm(f"init phase {phase}")

    def get_kubelet_status(self) -> str:
        state = self.host.run_command("sudo systemctl is-active kubelet || true").strip()
        if state == "active":
            return health.RUNNING
        if state in ("inactive", "activating", "deactivating"):
            return health.STOPPED
        return health.ERROR

    def get_api_server_status(self, ip: str) -> str:
        url = f"https://{ip}:{self.apiserver_port}/healthz"
        ca = self.home / "ca.crt"
        try:
            resp = requests.get(url, verify=str(ca) if ca.exists() else False,
                                timeout=Config.HEALTH_REQUEST_TIMEOUT)
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
            logger.debug(f"apiserver not reachable at {url}: {e}")
            return health.STOPPED
        except requests.exceptions.RequestException as e:
            logger.debug(f"apiserver check at {url} failed: {e}")
            return health.ERROR
        if resp.status_code == 200:
            return health.RUNNING
        logger.debug(f"apiserver healthz returned {resp.status_code}: {resp.text}")
        return health.ERROR
