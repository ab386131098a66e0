import logging
from typing import List, Optional

import typer
from pydantic import ValidationError

from kubelaunch import config as cfg
from kubelaunch.config import Config, home_dir, kubeconfig_path
from kubelaunch.errors import FatalStepError
from kubelaunch.modules.models import ExtraOption, KubernetesConfig, MachineConfig, StartOptions
from kubelaunch.modules.runtime import RUNTIMES, lookup_runtime
from kubelaunch.modules.start import StartSequencer
from kubelaunch.utils import parse_disk_size_mb

logger = logging.getLogger("kubelaunch.commands.start")


def start(
    ctx: typer.Context,
    profile: str = typer.Option(cfg.DEFAULT_PROFILE, "--profile", "-p", help="Profile (and machine) name"),
    vm_driver: str = typer.Option(Config.VM_DRIVER, help="Machine driver: multipass, generic or none"),
    memory: int = typer.Option(cfg.DEFAULT_MEMORY, help="Memory allocated to the VM (MB)"),
    cpus: int = typer.Option(cfg.DEFAULT_CPUS, help="Number of CPUs allocated to the VM"),
    disk_size: str = typer.Option(cfg.DEFAULT_DISK_SIZE, help="Disk size allocated to the VM, <number>[b|k|m|g]"),
    iso_url: str = typer.Option(cfg.DEFAULT_ISO_URL, help="Machine image to boot"),
    kubernetes_version: str = typer.Option(cfg.DEFAULT_KUBERNETES_VERSION, help="Kubernetes version to run"),
    container_runtime: str = typer.Option("", help="Container runtime: docker, crio, cri-o, rkt or containerd"),
    cri_socket: str = typer.Option("", help="CRI socket path"),
    network_plugin: str = typer.Option("", help="Kubelet network plugin"),
    enable_default_cni: bool = typer.Option(False, help="Install a default bridge CNI configuration"),
    feature_gates: str = typer.Option("", help="Feature gates, key=value pairs separated by commas"),
    extra_config: Optional[List[str]] = typer.Option(
        None, help="Component option, component.key=value (repeatable)"
    ),
    apiserver_name: str = typer.Option(cfg.APISERVER_NAME, help="Name in the apiserver certificate"),
    apiserver_names: Optional[List[str]] = typer.Option(None, help="Extra apiserver certificate names"),
    apiserver_ips: Optional[List[str]] = typer.Option(None, help="Extra apiserver certificate IPs"),
    apiserver_port: int = typer.Option(cfg.APISERVER_PORT, help="Apiserver port"),
    dns_domain: str = typer.Option(cfg.CLUSTER_DNS_DOMAIN, help="Cluster DNS domain"),
    service_cluster_ip_range: str = typer.Option(cfg.DEFAULT_SERVICE_CIDR, help="Service CIDR"),
    docker_env: Optional[List[str]] = typer.Option(None, help="Environment for the docker daemon"),
    docker_opt: Optional[List[str]] = typer.Option(None, help="Options for the docker daemon"),
    insecure_registry: Optional[List[str]] = typer.Option(None, help="Insecure registries"),
    registry_mirror: Optional[List[str]] = typer.Option(None, help="Registry mirrors"),
    host_only_cidr: str = typer.Option("192.168.99.1/24", help="Host-only network CIDR"),
    hyperv_virtual_switch: str = typer.Option("", help="Hyper-V virtual switch"),
    kvm_network: str = typer.Option("default", help="KVM network name"),
    xhyve_disk_driver: str = typer.Option("ahci-hd", help="xhyve disk driver"),
    nfs_share: Optional[List[str]] = typer.Option(None, help="Local folders to share over NFS"),
    nfs_shares_root: str = typer.Option("/nfsshares", help="Where NFS shares are mounted"),
    hyperkit_vpnkit_sock: str = typer.Option("", help="VPNKit socket"),
    hyperkit_vsock_ports: Optional[List[str]] = typer.Option(None, help="Guest vsock ports"),
    uuid: str = typer.Option("", help="Machine UUID"),
    gpu: bool = typer.Option(False, help="Pass host GPUs through (kvm2 only)"),
    ssh_ip_address: str = typer.Option("", help="Address of the machine (generic driver)"),
    ssh_user: str = typer.Option("root", help="SSH user (generic driver)"),
    ssh_key: str = typer.Option("", help="SSH private key (generic driver)"),
    ssh_port: int = typer.Option(22, help="SSH port (generic driver)"),
    disable_driver_mounts: bool = typer.Option(False, help="Disable driver folder mounts"),
    bootstrapper: str = typer.Option(cfg.DEFAULT_BOOTSTRAPPER, help="Cluster bootstrapper"),
    cache_images: bool = typer.Option(False, help="Cache control plane images locally and load them"),
    keep_context: bool = typer.Option(cfg.DEFAULT_KEEP_CONTEXT, help="Do not switch the kubectl context"),
    embed_certs: bool = typer.Option(False, help="Embed certificates in the kubeconfig"),
    mount: bool = typer.Option(False, help="Mount a host folder into the machine"),
    mount_string: str = typer.Option(
        f"{cfg.DEFAULT_MOUNT_DIR}:{cfg.DEFAULT_MOUNT_ENDPOINT}", help="<source>:<target> for --mount"
    ),
):
    """Start a local Kubernetes cluster."""
    verbosity = (ctx.obj or {}).get("verbosity", 0)
    try:
        if lookup_runtime(container_runtime) is None:
            names = ", ".join(r.name for r in RUNTIMES)
            raise ValueError(f"Unsupported container runtime {container_runtime!r}: must be one of {names}")
        machine = MachineConfig(
            iso_url=iso_url,
            memory=memory,
            cpus=cpus,
            disk_size_mb=parse_disk_size_mb(disk_size),
            vm_driver=vm_driver,
            container_runtime=container_runtime,
            host_only_cidr=host_only_cidr,
            hyperv_virtual_switch=hyperv_virtual_switch,
            kvm_network=kvm_network,
            xhyve_disk_driver=xhyve_disk_driver,
            hyperkit_vpnkit_sock=hyperkit_vpnkit_sock,
            hyperkit_vsock_ports=tuple(hyperkit_vsock_ports or ()),
            nfs_share=tuple(nfs_share or ()),
            nfs_shares_root=nfs_shares_root,
            ssh_ip_address=ssh_ip_address,
            ssh_user=ssh_user,
            ssh_key=ssh_key,
            ssh_port=ssh_port,
            docker_env=tuple(docker_env or ()),
            docker_opt=tuple(docker_opt or ()),
            insecure_registry=tuple(insecure_registry or ()),
            registry_mirror=tuple(registry_mirror or ()),
            disable_driver_mounts=disable_driver_mounts,
            uuid=uuid,
            gpu=gpu,
        )
        kubernetes = KubernetesConfig(
            kubernetes_version=kubernetes_version,
            node_port=apiserver_port,
            apiserver_name=apiserver_name,
            apiserver_names=tuple(apiserver_names or ()),
            apiserver_ips=tuple(apiserver_ips or ()),
            dns_domain=dns_domain,
            feature_gates=feature_gates,
            container_runtime=container_runtime,
            cri_socket=cri_socket,
            network_plugin=network_plugin,
            service_cidr=service_cluster_ip_range,
            extra_options=tuple(ExtraOption.parse(o) for o in extra_config or ()),
            should_load_cached_images=cache_images,
            enable_default_cni=enable_default_cni,
        )
        options = StartOptions(
            profile=profile,
            bootstrapper=bootstrapper,
            cache_images=cache_images,
            keep_context=keep_context,
            embed_certs=embed_certs,
            mount=mount,
            mount_string=mount_string,
            verbosity=verbosity,
            want_none_driver_warning=Config.WANT_NONE_DRIVER_WARNING,
            kubeconfig_path=kubeconfig_path(),
            home=home_dir(),
            machine=machine,
            kubernetes=kubernetes,
        )
    except (ValidationError, ValueError) as e:
        typer.echo(f"❌ Invalid configuration: {e}", err=True)
        raise typer.Exit(1)

    logger.debug(f"Start options: {options.model_dump(mode='json')}")
    try:
        StartSequencer(options).run()
    except FatalStepError as e:
        typer.echo(f"❌ Error {e}", err=True)
        raise typer.Exit(1)
