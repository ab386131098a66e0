"""
Data models for a kubelaunch profile.

All models are frozen: a start run builds them once and replaces them with
``model_copy(update=...)`` rather than mutating them.
"""
from pathlib import Path
from typing import Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, IPvAnyAddress, field_validator, model_validator

from kubelaunch import config as cfg

VALID_EXTRA_COMPONENTS = (
    "kubelet",
    "apiserver",
    "controller-manager",
    "etcd",
    "proxy",
    "scheduler",
)


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class ExtraOption(_Frozen):
    """A per-component option passed through to the control plane."""
    component: str
    key: str
    value: str

    @classmethod
    def parse(cls, raw: str) -> "ExtraOption":
        """Parse ``component.key=value``.

        Raises:
            ValueError: If the string is malformed or the component is unknown
        """
        name, sep, value = raw.partition("=")
        component, dot, key = name.partition(".")
        if not sep or not dot or not component or not key:
            raise ValueError(f"Invalid extra option {raw!r}: expected component.key=value")
        if component not in VALID_EXTRA_COMPONENTS:
            raise ValueError(
                f"Invalid extra option component {component!r}: "
                f"must be one of {', '.join(VALID_EXTRA_COMPONENTS)}"
            )
        return cls(component=component, key=key, value=value)

    def __str__(self) -> str:
        return f"{self.component}.{self.key}={self.value}"


class MachineConfig(_Frozen):
    """Parameters used to provision the machine."""
    iso_url: str = cfg.DEFAULT_ISO_URL
    memory: int = Field(default=cfg.DEFAULT_MEMORY, gt=0, description="Memory in MB")
    cpus: int = Field(default=cfg.DEFAULT_CPUS, gt=0)
    disk_size_mb: int = Field(default=20480, description="Disk size in MB")
    vm_driver: str = cfg.DEFAULT_VM_DRIVER
    container_runtime: str = ""

    # Driver specific network settings
    host_only_cidr: str = "192.168.99.1/24"
    hyperv_virtual_switch: str = ""
    kvm_network: str = "default"
    xhyve_disk_driver: str = "ahci-hd"
    hyperkit_vpnkit_sock: str = ""
    hyperkit_vsock_ports: Tuple[str, ...] = ()
    nfs_share: Tuple[str, ...] = ()
    nfs_shares_root: str = "/nfsshares"
    ssh_ip_address: str = ""
    ssh_user: str = "root"
    ssh_key: str = ""
    ssh_port: int = 22

    # Container engine settings
    docker_env: Tuple[str, ...] = ()
    docker_opt: Tuple[str, ...] = ()
    insecure_registry: Tuple[str, ...] = ()
    registry_mirror: Tuple[str, ...] = ()

    disable_driver_mounts: bool = False
    uuid: str = ""
    gpu: bool = False

    @model_validator(mode="after")
    def check_invariants(self) -> "MachineConfig":
        if self.disk_size_mb < cfg.MINIMUM_DISK_SIZE_MB:
            raise ValueError(
                f"Disk Size {self.disk_size_mb}MB is too small, "
                f"the minimum disk size is {cfg.MINIMUM_DISK_SIZE_MB}MB"
            )
        if self.gpu and self.vm_driver != "kvm2":
            raise ValueError("--gpu is only supported with --vm-driver=kvm2")
        return self


class KubernetesConfig(_Frozen):
    """Parameters used to bootstrap the cluster."""
    kubernetes_version: str = cfg.DEFAULT_KUBERNETES_VERSION
    node_ip: str = ""
    node_port: int = cfg.APISERVER_PORT
    node_name: str = cfg.DEFAULT_NODE_NAME
    apiserver_name: str = cfg.APISERVER_NAME
    apiserver_names: Tuple[str, ...] = ()
    apiserver_ips: Tuple[IPvAnyAddress, ...] = ()
    dns_domain: str = cfg.CLUSTER_DNS_DOMAIN
    feature_gates: str = ""
    container_runtime: str = ""
    cri_socket: str = ""
    network_plugin: str = ""
    service_cidr: str = cfg.DEFAULT_SERVICE_CIDR
    extra_options: Tuple[ExtraOption, ...] = ()
    should_load_cached_images: bool = False
    enable_default_cni: bool = False

    def extra_args_for(self, component: str) -> Dict[str, str]:
        """Extra options of one component, later entries winning."""
        return {o.key: o.value for o in self.extra_options if o.component == component}


class ProfileDocument(_Frozen):
    """The durable desired state of one profile."""
    machine_config: MachineConfig
    kubernetes_config: Optional[KubernetesConfig] = None


class StartOptions(_Frozen):
    """Everything a start run needs, resolved once from the command line."""
    profile: str = cfg.DEFAULT_PROFILE
    bootstrapper: str = cfg.DEFAULT_BOOTSTRAPPER
    cache_images: bool = False
    keep_context: bool = cfg.DEFAULT_KEEP_CONTEXT
    embed_certs: bool = False
    mount: bool = False
    mount_string: str = f"{cfg.DEFAULT_MOUNT_DIR}:{cfg.DEFAULT_MOUNT_ENDPOINT}"
    verbosity: int = 0
    want_none_driver_warning: bool = True
    kubeconfig_path: Path
    home: Path
    machine: MachineConfig
    kubernetes: KubernetesConfig

    @field_validator("profile")
    @classmethod
    def check_profile(cls, v: str) -> str:
        if not v or "/" in v or v.startswith("."):
            raise ValueError(f"Invalid profile name {v!r}")
        return v

    @property
    def machine_name(self) -> str:
        return self.profile

    @property
    def is_none_driver(self) -> bool:
        return self.machine.vm_driver == cfg.DRIVER_NONE
