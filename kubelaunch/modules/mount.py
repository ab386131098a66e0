"""Host folder mount helper.

``start --mount`` launches ``kubelaunch mount`` as a detached child and
records its PID in ``<home>/.mount-process`` so other tools can find and
stop it. The child mounts the folder, then holds the mount until it is
signalled.
"""
import logging
import os
import signal
import subprocess
import sys
import threading
from pathlib import Path
from typing import Optional, Tuple

from kubelaunch.config import CHILD_PROCESS_ENV, MOUNT_PROCESS_FILE_NAME, PROFILE_ENV
from kubelaunch.modules.drivers.base import Host
from kubelaunch.utils import write_file_atomic

logger = logging.getLogger("kubelaunch.mount")


def pid_file(home: Path) -> Path:
    return Path(home) / MOUNT_PROCESS_FILE_NAME


def parse_mount_string(mount_string: str) -> Tuple[str, str]:
    """Split ``<source>:<target>``.

    Raises:
        ValueError: If either side is missing
    """
    source, sep, target = mount_string.rpartition(":")
    if not sep or not source or not target:
        raise ValueError(f"Invalid mount string {mount_string!r}: expected <source directory>:<target directory>")
    return os.path.expanduser(source), target


def mount_command(mount_string: str, verbosity: int) -> list:
    debug_val = 1 if verbosity >= 8 else 0
    return [sys.executable, "-m", "kubelaunch", "mount", f"--v={debug_val}", mount_string]


def spawn_mount_helper(mount_string: str, verbosity: int, home: Path, profile: Optional[str] = None) -> int:
    """Start the mount helper and record its PID.

    Args:
        mount_string: ``<source>:<target>`` passed to the helper
        verbosity: Parent verbosity; at 8 or above the child shares our output
        home: Tool home where the PID file lives
        profile: Profile the helper mounts into, passed through the environment

    Returns:
        int: PID of the helper

    Raises:
        OSError: If the process cannot be started or the PID cannot be recorded
    """
    env = dict(os.environ)
    env[CHILD_PROCESS_ENV] = "true"
    if profile:
        env[PROFILE_ENV] = profile
    output = None if verbosity >= 8 else subprocess.DEVNULL

    proc = subprocess.Popen(
        mount_command(mount_string, verbosity),
        env=env,
        stdin=subprocess.DEVNULL,
        stdout=output,
        stderr=output,
        start_new_session=True,
    )
    logger.debug(f"Mount helper started with PID {proc.pid}")
    write_file_atomic(pid_file(home), str(proc.pid), mode=0o600)
    return proc.pid


def is_child_process() -> bool:
    return os.getenv(CHILD_PROCESS_ENV, "").lower() == "true"


def read_mount_pid(home: Path) -> Optional[int]:
    try:
        return int(pid_file(home).read_text().strip())
    except (FileNotFoundError, ValueError):
        return None


def serve_mount(host: Host, source: str, target: str, home: Path,
                stop: Optional[threading.Event] = None) -> None:
    """Mount ``source`` at ``target`` and keep it until SIGTERM/SIGINT or ``stop`` is set."""
    stop = stop or threading.Event()

    def _handle(signum, frame):
        logger.info(f"Received signal {signum}, unmounting {target}")
        stop.set()

    if threading.current_thread() is threading.main_thread():
        signal.signal(signal.SIGTERM, _handle)
        signal.signal(signal.SIGINT, _handle)

    logger.info(f"📂 Mounting {source} into {host.name}:{target}")
    host.mount(source, target)
    try:
        stop.wait()
    finally:
        host.unmount(target)
        if read_mount_pid(home) == os.getpid():
            pid_file(home).unlink()
        logger.info(f"Unmounted {target}")
