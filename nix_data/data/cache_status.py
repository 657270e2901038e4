"""
Track which version each cache artifact holds.

Every artifact `<stem>.<ext>` has a plain-text marker `<stem>.ver` next to it.
The marker is written only after the artifact has been fully built.
"""
from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from nix_data.domain.models import CacheManifest

logger = logging.getLogger(__name__)


class CacheEntry:
    """Artifact and marker paths of one cached document."""

    def __init__(self, cache_dir: Path, stem: str, extension: str = "db"):
        self.cache_dir = cache_dir
        self.stem = stem
        self.artifact_path = cache_dir / f"{stem}.{extension}"
        self.marker_path = cache_dir / f"{stem}.ver"

    def read_marker(self) -> Optional[str]:
        """Version recorded in the marker, or None if there is no readable marker."""
        try:
            return self.marker_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning(f"Could not read marker {self.marker_path}: {e}")
            return None

    def write_marker(self, version: str) -> None:
        self.marker_path.parent.mkdir(parents=True, exist_ok=True)
        self.marker_path.write_text(version, encoding="utf-8")

    def is_fresh(self, version: str) -> bool:
        """Fresh iff the marker holds exactly `version` and the artifact exists."""
        return self.read_marker() == version and self.artifact_path.exists()

    def manifest(self) -> CacheManifest:
        exists = self.artifact_path.exists()
        last_built = None
        if exists:
            last_built = datetime.fromtimestamp(self.artifact_path.stat().st_mtime)
        return CacheManifest(
            artifact_path=str(self.artifact_path),
            marker_path=str(self.marker_path),
            version=self.read_marker(),
            exists=exists,
            last_built=last_built,
        )
