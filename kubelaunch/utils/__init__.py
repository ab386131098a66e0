"""Utility functions and helpers for the kubelaunch application."""
import logging
import os
import pwd
import re
import socket
import tempfile
from pathlib import Path
from typing import Union

logger = logging.getLogger("kubelaunch.utils")

_SIZE_UNITS = {
    "b": 1,
    "k": 1024,
    "m": 1024 ** 2,
    "g": 1024 ** 3,
    "t": 1024 ** 4,
}
_SIZE_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([bkmgt]?)b?\s*$", re.IGNORECASE)


def parse_disk_size_mb(size: str) -> int:
    """Convert a human readable size into megabytes.

    Args:
        size: ``<number>[<unit>]`` where unit is one of b, k, m, g or t
            (binary multiples, an optional trailing ``b`` is accepted).
            A bare number is taken as megabytes.

    Returns:
        int: Size in MB, rounded down

    Raises:
        ValueError: If the string cannot be parsed
    """
    match = _SIZE_RE.match(str(size))
    if not match:
        raise ValueError(f"Invalid disk size {size!r}: expected <number>[b|k|m|g|t]")
    number, unit = match.groups()
    unit = unit.lower() or "m"
    return int(float(number) * _SIZE_UNITS[unit] // _SIZE_UNITS["m"])


def write_file_atomic(path: Union[str, Path], data: Union[str, bytes], mode: int = 0o600) -> None:
    """Write ``data`` to ``path`` without ever exposing a partial file.

    The content goes to a temporary file in the same directory, is fsynced
    and then renamed over the target. The temporary file is removed if any
    step fails.

    Args:
        path: Destination file
        data: Text (written as UTF-8) or bytes
        mode: File permissions (default: 0o600)
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(data, str):
        data = data.encode("utf-8")

    fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise
    logger.debug(f"Wrote {len(data)} bytes to {path}")


def chown_recursive_to_user(path: Union[str, Path], username: str) -> None:
    """Recursively change ownership of ``path`` to ``username``.

    Args:
        path: Directory to walk
        username: Owner to apply; its primary group is used as the group

    Raises:
        KeyError: If the user does not exist
        OSError: If a chown fails
    """
    entry = pwd.getpwnam(username)
    uid, gid = entry.pw_uid, entry.pw_gid
    path = Path(path)
    os.chown(path, uid, gid)
    for root, dirs, files in os.walk(path):
        for name in dirs + files:
            os.chown(os.path.join(root, name), uid, gid, follow_symlinks=False)


def get_local_ip() -> str:
    """Get the primary IP address of the current machine.

    Returns:
        str: Local IP address or '127.0.0.1' if detection fails
    """
    try:
        # Create a socket connection to a public DNS server
        s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            s.connect(("8.8.8.8", 80))
            return s.getsockname()[0]
        finally:
            s.close()
    except OSError as e:
        logger.warning(f"Failed to detect local IP: {e}")
        return '127.0.0.1'
