"""Configuration management for the kubelaunch application."""
import os
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv

# Load environment variables from .env file if it exists
load_dotenv()

# Sizing
MINIMUM_DISK_SIZE_MB = 2000
DEFAULT_DISK_SIZE = "20g"
DEFAULT_MEMORY = 2048
DEFAULT_CPUS = 2

# Machine defaults
DEFAULT_VM_DRIVER = "multipass"
DEFAULT_ISO_URL = "24.04"
DRIVER_NONE = "none"
DEFAULT_PROFILE = "kubelaunch"
DEFAULT_BOOTSTRAPPER = "kubeadm"

# Cluster defaults
DEFAULT_KUBERNETES_VERSION = "v1.30.4"
VERSION_PREFIX = "v"
DEFAULT_NODE_NAME = "kubelaunch"
APISERVER_PORT = 8443
APISERVER_NAME = "kubelaunchCA"
CLUSTER_DNS_DOMAIN = "cluster.local"
DEFAULT_SERVICE_CIDR = "10.96.0.0/12"
DEFAULT_KEEP_CONTEXT = False

# Mount helper
DEFAULT_MOUNT_DIR = str(Path.home())
DEFAULT_MOUNT_ENDPOINT = "/kubelaunch-host"
MOUNT_PROCESS_FILE_NAME = ".mount-process"
CHILD_PROCESS_ENV = "KUBELAUNCH_CHILD_PROCESS"
CHANGE_NONE_USER_ENV = "CHANGE_KUBELAUNCH_NONE_USER"
PROFILE_ENV = "KUBELAUNCH_PROFILE"


class Config:
    """Application configuration with sensible defaults."""

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    LOG_FORMAT: str = os.getenv(
        "LOG_FORMAT",
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    LOG_FILE: Optional[str] = os.getenv("LOG_FILE") or None
    LOG_MAX_SIZE_MB: int = int(os.getenv("LOG_MAX_SIZE_MB", "100"))
    LOG_BACKUP_COUNT: int = int(os.getenv("LOG_BACKUP_COUNT", "5"))

    # Behaviour
    VM_DRIVER: str = os.getenv("DEFAULT_VM_DRIVER", DEFAULT_VM_DRIVER)
    WANT_NONE_DRIVER_WARNING: bool = os.getenv(
        "WANT_NONE_DRIVER_WARNING", "true"
    ).lower() in ("1", "true", "yes")

    # Timeouts (in seconds)
    COMMAND_TIMEOUT: int = int(os.getenv("COMMAND_TIMEOUT", "600"))
    HEALTH_REQUEST_TIMEOUT: float = float(os.getenv("HEALTH_REQUEST_TIMEOUT", "5"))


def home_dir() -> Path:
    """Return the tool home directory.

    Read on every call so that ``KUBELAUNCH_HOME`` can be changed at runtime
    (tests, child processes).
    """
    return Path(os.path.expanduser(os.getenv("KUBELAUNCH_HOME", "~/.kubelaunch")))


def make_home_path(*parts: str) -> Path:
    return home_dir().joinpath(*parts)


def profile_file(profile: str) -> Path:
    """Location of the persisted profile document for ``profile``."""
    return make_home_path("profiles", profile, "config.json")


def machine_record(name: str) -> Path:
    return make_home_path("machines", f"{name}.json")


def user_config_file() -> Path:
    return make_home_path("config", "config.json")


def image_cache_dir() -> Path:
    return make_home_path("cache", "images")


def kubeconfig_path() -> Path:
    """First entry of KUBECONFIG, else ~/.kube/config."""
    env = os.getenv("KUBECONFIG", "")
    for entry in env.split(os.pathsep):
        if entry:
            return Path(os.path.expanduser(entry))
    return Path.home() / ".kube" / "config"
