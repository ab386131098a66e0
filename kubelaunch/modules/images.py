"""Local cache of control plane images."""
import json
import logging
import subprocess
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Dict, List, Optional

from kubelaunch.config import image_cache_dir, user_config_file
from kubelaunch.errors import UnsupportedBootstrapperError
from kubelaunch.modules.drivers.base import Host
from kubelaunch.utils import write_file_atomic

logger = logging.getLogger("kubelaunch.images")

IMAGE_REGISTRY = "registry.k8s.io"
REMOTE_IMAGE_DIR = "/var/lib/kubelaunch/images"
PAUSE_VERSION = "3.9"
ETCD_VERSION = "3.5.15-0"
COREDNS_VERSION = "v1.11.1"


def images_for_bootstrapper(version: str, bootstrapper: str) -> List[str]:
    """Images the bootstrapper pulls for ``version``."""
    if bootstrapper != "kubeadm":
        raise UnsupportedBootstrapperError(f"No image list for bootstrapper {bootstrapper!r}")
    images = [
        f"{IMAGE_REGISTRY}/{component}:{version}"
        for component in ("kube-apiserver", "kube-controller-manager", "kube-scheduler", "kube-proxy")
    ]
    images += [
        f"{IMAGE_REGISTRY}/pause:{PAUSE_VERSION}",
        f"{IMAGE_REGISTRY}/etcd:{ETCD_VERSION}",
        f"{IMAGE_REGISTRY}/coredns/coredns:{COREDNS_VERSION}",
    ]
    return images


def image_tarball(image: str, cache_dir: Optional[Path] = None) -> Path:
    """Cache path of ``image``: ``registry.k8s.io/pause:3.9`` → ``registry.k8s.io/pause_3.9``."""
    cache_dir = cache_dir or image_cache_dir()
    return Path(cache_dir) / image.replace(":", "_")


def _save_image(image: str, dest: Path) -> Path:
    if dest.exists():
        logger.debug(f"{image} already cached at {dest}")
        return dest
    dest.parent.mkdir(parents=True, exist_ok=True)
    tmp = dest.with_name(dest.name + ".tmp")
    subprocess.run(["docker", "pull", image], check=True, capture_output=True, text=True)
    subprocess.run(["docker", "save", "-o", str(tmp), image], check=True, capture_output=True, text=True)
    tmp.replace(dest)
    logger.info(f"✅ Cached {image}")
    return dest


def cache_images(images: List[str], cache_dir: Optional[Path] = None, max_workers: int = 4) -> List[Path]:
    """Save ``images`` as tarballs under the cache directory.

    Raises:
        RuntimeError: Listing every image that could not be cached
    """
    paths = []
    errors = []
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        futures = {pool.submit(_save_image, image, image_tarball(image, cache_dir)): image for image in images}
        for future in as_completed(futures):
            image = futures[future]
            try:
                paths.append(future.result())
            except (subprocess.CalledProcessError, OSError) as e:
                detail = getattr(e, "stderr", None) or str(e)
                errors.append(f"{image}: {detail}")
    if errors:
        raise RuntimeError("Failed to cache images:\n" + "\n".join(errors))
    return paths


def cache_images_for_bootstrapper(version: str, bootstrapper: str) -> List[Path]:
    return cache_images(images_for_bootstrapper(version, bootstrapper))


def load_images(host: Host, images: List[str], cache_dir: Optional[Path] = None) -> None:
    """Copy cached tarballs onto the machine and load them into the engine.

    Raises:
        FileNotFoundError: If an image has not been cached
        CommandError: If the copy or load fails
    """
    for image in images:
        tarball = image_tarball(image, cache_dir)
        if not tarball.exists():
            raise FileNotFoundError(f"{image} is not cached ({tarball})")
        remote = f"{REMOTE_IMAGE_DIR}/{tarball.name}"
        host.copy_to(tarball, remote)
        host.run_command(f"sudo docker load -i {remote}")
        logger.debug(f"Loaded {image} into {host.name}")


# Images listed in the user config ("cache" key), managed by `kubelaunch cache`

def read_user_config() -> Dict:
    try:
        with open(user_config_file(), "r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        return {}


def write_user_config(data: Dict) -> None:
    write_file_atomic(user_config_file(), json.dumps(data, indent=4) + "\n", mode=0o600)


def cached_images_in_config() -> List[str]:
    return sorted((read_user_config().get("cache") or {}).keys())


def add_to_config(images: List[str]) -> None:
    data = read_user_config()
    cache = data.setdefault("cache", {})
    for image in images:
        cache[image] = None
    write_user_config(data)


def delete_from_config(images: List[str]) -> None:
    data = read_user_config()
    cache = data.get("cache") or {}
    for image in images:
        cache.pop(image, None)
    data["cache"] = cache
    write_user_config(data)


def load_cached_images_in_config(host: Host) -> List[str]:
    """Load every image listed in the user config onto the machine."""
    images = cached_images_in_config()
    if images:
        load_images(host, images)
    return images
