"""Persistence of profile documents."""
import json
import logging
from pathlib import Path
from typing import List, Optional, Union

from pydantic import ValidationError

from kubelaunch.config import make_home_path, profile_file
from kubelaunch.errors import ProfileLoadError
from kubelaunch.modules.models import ProfileDocument
from kubelaunch.utils import write_file_atomic

logger = logging.getLogger("kubelaunch.profile")


def serialize(doc: ProfileDocument) -> str:
    """Deterministic JSON rendering: model field order, 4-space indent."""
    return json.dumps(doc.model_dump(mode="json"), indent=4, ensure_ascii=False) + "\n"


class ProfileStore:
    """Loads and saves the profile document at a fixed path."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    @classmethod
    def for_profile(cls, profile: str) -> "ProfileStore":
        return cls(profile_file(profile))

    def load(self) -> Optional[ProfileDocument]:
        """Read the profile document.

        Returns:
            The document, or None when no profile has been saved yet

        Raises:
            ProfileLoadError: If the file exists but cannot be decoded
        """
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.info(f"No existing profile at {self.path}")
            return None
        except OSError as e:
            raise ProfileLoadError(f"Failed to read profile {self.path}: {e}") from e

        try:
            return ProfileDocument.model_validate(json.loads(raw))
        except (json.JSONDecodeError, ValidationError) as e:
            raise ProfileLoadError(f"Invalid profile {self.path}: {e}") from e

    def save(self, doc: ProfileDocument) -> None:
        """Atomically replace the profile document."""
        self.path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        write_file_atomic(self.path, serialize(doc), mode=0o600)
        logger.debug(f"Saved profile to {self.path}")


def list_profiles() -> List[str]:
    """Names of all profiles that have a saved document."""
    root = make_home_path("profiles")
    if not root.is_dir():
        return []
    return sorted(p.parent.name for p in root.glob("*/config.json"))
