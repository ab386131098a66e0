"""Cluster bring-up sequence for one profile.

The sequence is fixed. Each step is classified fatal or advisory in
``FAILURE_POLICY``; a fatal failure raises ``FatalStepError`` and stops the
run, an advisory one is logged and the run continues. Retries happen only
inside the health poller.
"""
import enum
import logging
import os
import threading
import time
from concurrent.futures import Future
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, Optional

import typer

from kubelaunch.config import CHANGE_NONE_USER_ENV
from kubelaunch.errors import FatalStepError
from kubelaunch.modules import health
from kubelaunch.modules.bootstrapper import Bootstrapper, get_cluster_bootstrapper
from kubelaunch.modules.drivers import Host, HostProvisioner, get_provisioner
from kubelaunch.modules.health import Attempt
from kubelaunch.modules.images import cache_images_for_bootstrapper, load_cached_images_in_config
from kubelaunch.modules.kubeconfig import KubeConfigSetup, server_address, setup_kubeconfig
from kubelaunch.modules.models import KubernetesConfig, ProfileDocument, StartOptions
from kubelaunch.modules.mount import spawn_mount_helper
from kubelaunch.modules.profile import ProfileStore
from kubelaunch.modules.runtime import (
    crictl_config_command,
    restart_selected_runtime,
    runtime_endpoints,
    stop_other_runtimes,
)
from kubelaunch.modules.version import guard_version
from kubelaunch.utils import chown_recursive_to_user

logger = logging.getLogger("kubelaunch.start")


class Severity(str, enum.Enum):
    FATAL = "fatal"
    ADVISORY = "advisory"


ACQUIRE_PROVISIONER = "acquire provisioning client"
CHECK_EXISTS = "check if machine exists"
LOAD_PROFILE = "load profile"
SAVE_PROFILE = "save profile"
START_HOST = "start host"
GET_IP = "get host IP"
WRITE_RUNTIME_CONFIG = "write crictl config"
ACQUIRE_BOOTSTRAPPER = "acquire cluster bootstrapper"
CACHE_IMAGES = "cache images"
UPDATE_CLUSTER = "update cluster"
SETUP_CERTS = "set up certs"
GET_URL = "get host URL"
SETUP_KUBECONFIG = "set up kubeconfig"
STOP_RUNTIMES = "stop other runtimes"
RESTART_RUNTIME = "restart runtime"
START_CLUSTER = "start cluster"
RESTART_CLUSTER = "restart cluster"
KUBELET_HEALTH = "kubelet health"
APISERVER_HEALTH = "apiserver health"
SPAWN_MOUNT = "spawn mount helper"
CHOWN_HOME = "change home ownership"
LOAD_CACHED_IMAGES = "load cached images"

FAILURE_POLICY: Dict[str, Severity] = {
    ACQUIRE_PROVISIONER: Severity.FATAL,
    CHECK_EXISTS: Severity.FATAL,
    LOAD_PROFILE: Severity.ADVISORY,
    SAVE_PROFILE: Severity.ADVISORY,
    START_HOST: Severity.FATAL,
    GET_IP: Severity.FATAL,
    WRITE_RUNTIME_CONFIG: Severity.ADVISORY,
    ACQUIRE_BOOTSTRAPPER: Severity.FATAL,
    CACHE_IMAGES: Severity.ADVISORY,
    UPDATE_CLUSTER: Severity.FATAL,
    SETUP_CERTS: Severity.FATAL,
    GET_URL: Severity.FATAL,
    SETUP_KUBECONFIG: Severity.FATAL,
    STOP_RUNTIMES: Severity.ADVISORY,
    RESTART_RUNTIME: Severity.ADVISORY,
    START_CLUSTER: Severity.FATAL,
    RESTART_CLUSTER: Severity.FATAL,
    KUBELET_HEALTH: Severity.FATAL,
    APISERVER_HEALTH: Severity.FATAL,
    SPAWN_MOUNT: Severity.FATAL,
    CHOWN_HOME: Severity.FATAL,
    LOAD_CACHED_IMAGES: Severity.ADVISORY,
}

NONE_DRIVER_WARNING = """===================
WARNING: IT IS RECOMMENDED NOT TO RUN THE NONE DRIVER ON PERSONAL WORKSTATIONS
\tThe 'none' driver will run an insecure kubernetes apiserver as root that may leave the host vulnerable to CSRF attacks
"""

NONE_DRIVER_OWNERSHIP = f"""When using the none driver, the kubectl config and credentials generated will be root owned and will appear in the root home directory.
You will need to move the files to the appropriate location and then set the correct permissions.  An example of this is below:

\tsudo mv /root/.kube $HOME/.kube # this will write over any previous configuration
\tsudo chown -R $USER $HOME/.kube
\tsudo chgrp -R $USER $HOME/.kube

\tsudo mv /root/.kubelaunch $HOME/.kubelaunch # this will write over any previous configuration
\tsudo chown -R $USER $HOME/.kubelaunch
\tsudo chgrp -R $USER $HOME/.kubelaunch

This can also be done automatically by setting the env var {CHANGE_NONE_USER_ENV}=true"""


def run_in_background(fn: Callable, *args) -> Future:
    """Run ``fn`` on a daemon thread and return a future for its outcome.

    A daemon thread is not joined at interpreter exit, so a fatal step can
    end the process while a slow task is still running.
    """
    future: Future = Future()
    future.set_running_or_notify_cancel()

    def target() -> None:
        try:
            future.set_result(fn(*args))
        except BaseException as e:
            future.set_exception(e)

    threading.Thread(target=target, name="image-cache", daemon=True).start()
    return future


class StartSequencer:
    """Runs the bring-up sequence for ``options``.

    Collaborators are injected so the sequence can run against fakes.
    """

    def __init__(
        self,
        options: StartOptions,
        store: Optional[ProfileStore] = None,
        provisioner_factory: Callable[[str], HostProvisioner] = get_provisioner,
        bootstrapper_factory: Callable[..., Bootstrapper] = get_cluster_bootstrapper,
        image_cacher: Callable[[str, str], object] = cache_images_for_bootstrapper,
        cached_image_loader: Callable[[Host], object] = load_cached_images_in_config,
        mount_spawner: Callable[..., int] = spawn_mount_helper,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.options = options
        self.store = store or ProfileStore.for_profile(options.profile)
        self.provisioner_factory = provisioner_factory
        self.bootstrapper_factory = bootstrapper_factory
        self.image_cacher = image_cacher
        self.cached_image_loader = cached_image_loader
        self.mount_spawner = mount_spawner
        self.sleep = sleep

    @contextmanager
    def _step(self, name: str) -> Iterator[None]:
        """Apply the failure policy of step ``name`` to the enclosed block."""
        try:
            yield
        except FatalStepError:
            raise
        except Exception as e:
            logger.error(f"Error in step '{name}': {e}")
            if FAILURE_POLICY[name] is Severity.FATAL:
                raise FatalStepError(name, e) from e

    def _fail(self, name: str, attempt: Attempt) -> None:
        if FAILURE_POLICY[name] is Severity.FATAL:
            raise FatalStepError(name, attempt.error)
        logger.error(f"Error in step '{name}': {attempt.error}")

    def _save(self, doc: ProfileDocument) -> None:
        with self._step(SAVE_PROFILE):
            self.store.save(doc)

    def _start_host(self, provisioner: HostProvisioner) -> Host:
        opts = self.options

        def attempt() -> Attempt:
            try:
                return Attempt.ok(provisioner.start_host(opts.machine_name, opts.machine))
            except Exception as e:
                logger.error(f"Error starting host: {e}. Retrying.")
                return Attempt.retry(e)

        attempts, delay = health.HOST_START_BUDGET
        result = health.retry_after(attempt, attempts, delay, self.sleep)
        if not result.succeeded:
            self._fail(START_HOST, result)
        return result.value

    def _join_image_cache(self, future: Optional[Future]) -> None:
        if future is None:
            return
        typer.echo("⏳ Waiting for image caching to complete...")
        with self._step(CACHE_IMAGES):
            future.result()

    def run(self) -> ProfileDocument:
        """Bring the cluster up.

        Returns:
            ProfileDocument: The profile as persisted by this run

        Raises:
            FatalStepError: If a fatal step fails
        """
        opts = self.options
        name = opts.machine_name
        with self._step(ACQUIRE_PROVISIONER):
            provisioner = self.provisioner_factory(opts.machine.vm_driver)

        with self._step(CHECK_EXISTS):
            exists = provisioner.exists(name)

        previous: Optional[ProfileDocument] = None
        with self._step(LOAD_PROFILE):
            previous = self.store.load()

        doc = ProfileDocument(machine_config=opts.machine)
        self._save(doc)

        cache_future: Optional[Future] = None
        if opts.cache_images:
            cache_future = run_in_background(
                self.image_cacher, opts.kubernetes.kubernetes_version, opts.bootstrapper
            )

        requested = opts.kubernetes.kubernetes_version
        typer.echo(f"🚀 Starting local Kubernetes {requested} cluster...")
        typer.echo("🖥️  Starting VM...")
        host = self._start_host(provisioner)

        typer.echo("🔍 Getting VM IP address...")
        with self._step(GET_IP):
            ip = host.get_ip()

        selected_runtime = opts.kubernetes.container_runtime
        endpoints = runtime_endpoints(selected_runtime)
        if endpoints:
            typer.echo("📝 Writing crictl config...")
            with self._step(WRITE_RUNTIME_CONFIG):
                host.run_command(crictl_config_command(endpoints))

        version = guard_version(previous, requested)

        k8s: KubernetesConfig = opts.kubernetes.model_copy(update={
            "kubernetes_version": version,
            "node_ip": ip,
            "should_load_cached_images": opts.cache_images,
        })

        with self._step(ACQUIRE_BOOTSTRAPPER):
            bootstrapper = self.bootstrapper_factory(opts.bootstrapper, host, k8s, opts.home)

        doc = ProfileDocument(machine_config=opts.machine, kubernetes_config=k8s)
        self._save(doc)

        self._join_image_cache(cache_future)

        typer.echo("📦 Moving files into cluster...")
        with self._step(UPDATE_CLUSTER):
            bootstrapper.update_cluster(k8s)

        typer.echo("🔐 Setting up certs...")
        with self._step(SETUP_CERTS):
            bootstrapper.setup_certs(k8s)

        typer.echo("🔌 Connecting to cluster...")
        with self._step(GET_URL):
            address = server_address(host.get_url(), k8s.node_port)

        typer.echo("⚙️  Setting up kubeconfig...")
        with self._step(SETUP_KUBECONFIG):
            setup_kubeconfig(KubeConfigSetup(
                cluster_name=name,
                cluster_server_address=address,
                client_certificate=opts.home / "client.crt",
                client_key=opts.home / "client.key",
                certificate_authority=opts.home / "ca.crt",
                kubeconfig_file=opts.kubeconfig_path,
                keep_context=opts.keep_context,
                embed_certs=opts.embed_certs,
            ))

        if not opts.is_none_driver:
            typer.echo("🛑 Stopping extra container runtimes...")
            with self._step(STOP_RUNTIMES):
                failed = stop_other_runtimes(host, selected_runtime)
                if failed:
                    logger.warning(f"⚠️  Runtimes still running: {', '.join(failed)}")
            if selected_runtime:
                with self._step(RESTART_RUNTIME):
                    restart_selected_runtime(host, selected_runtime)

        if not exists or opts.is_none_driver:
            typer.echo("🏗️  Starting cluster components...")
            with self._step(START_CLUSTER):
                bootstrapper.start_cluster(k8s)
        else:
            typer.echo("♻️  Machine exists, restarting cluster components...")
            with self._step(RESTART_CLUSTER):
                bootstrapper.restart_cluster(k8s)

        typer.echo("🩺 Verifying kubelet health ...")
        result = health.wait_for_kubelet(bootstrapper, self.sleep)
        if not result.succeeded:
            self._fail(KUBELET_HEALTH, result)

        typer.echo("🩺 Verifying apiserver health ...")
        result = health.wait_for_apiserver(bootstrapper, ip, self.sleep)
        if not result.succeeded:
            self._fail(APISERVER_HEALTH, result)

        if opts.mount:
            typer.echo(f"📂 Setting up hostmount on {opts.mount_string}...")
            with self._step(SPAWN_MOUNT):
                pid = self.mount_spawner(opts.mount_string, opts.verbosity, opts.home, profile=name)
                logger.info(f"Mount helper running with PID {pid}")

        if opts.keep_context:
            typer.echo(
                "✅ The local Kubernetes cluster has started. The kubectl context has not been altered, "
                f"kubectl will require \"--context={name}\" to use the local Kubernetes cluster."
            )
        else:
            typer.echo("✅ Kubectl is now configured to use the cluster.")

        if opts.is_none_driver:
            self._fix_none_driver_ownership()

        typer.echo("📦 Loading cached images from config file.")
        with self._step(LOAD_CACHED_IMAGES):
            self.cached_image_loader(host)

        typer.echo("\n\n🎉 Everything looks great. Please enjoy kubelaunch!")
        return doc

    def _fix_none_driver_ownership(self) -> None:
        opts = self.options
        if opts.want_none_driver_warning:
            typer.echo(NONE_DRIVER_WARNING)

        if not os.getenv(CHANGE_NONE_USER_ENV):
            typer.echo(NONE_DRIVER_OWNERSHIP)
            return

        username = os.getenv("SUDO_USER")
        if not username:
            logger.debug(f"{CHANGE_NONE_USER_ENV} set but not running under sudo, leaving ownership")
            return
        with self._step(CHOWN_HOME):
            chown_recursive_to_user(opts.home, username)
            logger.info(f"Changed ownership of {opts.home} to {username}")
