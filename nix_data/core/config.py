"""
Configuration for the cache pipeline.

A single `CacheConfig` instance is built at startup and handed to every
component constructor. Nothing reads the cache directory from a global.
"""
from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from nix_data.domain.errors import NixDataError
from nix_data.domain.models import SourceSelector

logger = logging.getLogger(__name__)

CONFIG_FILE_ENV_VAR = "NIX_DATA_CONFIG"
CACHE_DIR_ENV_VAR = "NIX_DATA_CACHE_DIR"
_DEFAULT_CACHE_DIR = Path("~/.cache/nix-data").expanduser()


class CacheConfig(BaseModel):
    """Settings shared by the resolver, downloader, store builder and cache manager."""

    cache_dir: Path = Field(
        default=_DEFAULT_CACHE_DIR,
        description="Directory holding the <source>.db artifacts and <source>.ver markers.",
    )
    channels_base_url: str = Field(
        default="https://channels.nixos.org",
        description="Base URL of the channel server.",
    )
    http_timeout: float = Field(
        default=60.0,
        gt=0,
        description="Timeout in seconds for every HTTP request.",
    )
    bulk_loader: Literal["sqlite", "sqlite3-cli"] = Field(
        default="sqlite",
        description="'sqlite' loads rows in-process; 'sqlite3-cli' pipes CSV into the sqlite3 binary.",
    )
    sqlite3_binary: str = Field(
        default="sqlite3",
        description="Executable used by the 'sqlite3-cli' loader.",
    )
    release: Optional[str] = Field(
        default=None,
        description="OS release identifier. Detected with `nixos-version` when unset.",
    )
    rolling_release: str = Field(
        default="22.11",
        description="Release identifier that tracks the unstable channel.",
    )
    channels: Dict[SourceSelector, str] = Field(
        default_factory=dict,
        description="Per-source channel name overrides, e.g. {'flake': 'nixos-unstable'}.",
    )
    declaration_key: str = Field(
        default="environment.systemPackages",
        description="Key whose list value declares the installed packages.",
    )
    declaration_paths: List[str] = Field(
        default_factory=lambda: ["/etc/nixos/configuration.nix"],
        description="Declaration sources read when a request names none.",
    )


def load_config(path: Optional[Path] = None) -> CacheConfig:
    """
    Build the configuration.

    Priority (lowest to highest):
    1. Field defaults
    2. JSON file given as `path`, or named by NIX_DATA_CONFIG
    3. NIX_DATA_CACHE_DIR for the cache directory
    """
    raw: dict = {}
    if path is None:
        env_path = os.environ.get(CONFIG_FILE_ENV_VAR)
        if env_path:
            path = Path(env_path).expanduser()

    if path is not None:
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise NixDataError(f"Failed to load configuration from {path}: {e}") from e
        logger.debug(f"Loaded configuration from {path}")

    cache_dir = os.environ.get(CACHE_DIR_ENV_VAR)
    if cache_dir:
        raw["cache_dir"] = Path(cache_dir).expanduser()

    return CacheConfig(**raw)
