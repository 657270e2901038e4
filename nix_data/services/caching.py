"""
Keep the local package stores in sync with the remote channel indexes.

A cycle resolves the remote version, compares it with the artifact's marker,
and only when they differ downloads the document, rebuilds the store and
rewrites the marker.
"""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Dict

from nix_data.core.config import CacheConfig
from nix_data.data.cache_status import CacheEntry
from nix_data.domain.models import CacheManifest, SourceSelector
from nix_data.domain.sources import stem_for
from nix_data.services.importer.index_downloader import IndexDownloader
from nix_data.services.importer.version_resolver import VersionResolver
from nix_data.storage.store_builder import StoreBuilder

logger = logging.getLogger(__name__)

OPTIONS_STEM = "nixosoptions"


class CacheManager:
    """
    Owns the cache directory layout and decides when a store must be rebuilt.

    Rebuilds of one artifact are serialized within the process. Running two
    processes against the same cache directory is not supported.
    """

    def __init__(
        self,
        config: CacheConfig,
        resolver: VersionResolver,
        downloader: IndexDownloader,
        builder: StoreBuilder,
    ):
        self.config = config
        self.resolver = resolver
        self.downloader = downloader
        self.builder = builder
        self._locks: Dict[Path, asyncio.Lock] = {}

    @property
    def cache_dir(self) -> Path:
        return self.config.cache_dir

    def _ensure_cache_dir(self) -> None:
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            # Later stages report the real failure if the directory is unusable.
            logger.warning(f"Could not create cache directory {self.cache_dir}: {e}")

    def _lock_for(self, path: Path) -> asyncio.Lock:
        lock = self._locks.get(path)
        if lock is None:
            lock = self._locks[path] = asyncio.Lock()
        return lock

    def entry(self, selector: SourceSelector) -> CacheEntry:
        return CacheEntry(self.cache_dir, stem_for(selector))

    def status(self, selector: SourceSelector) -> CacheManifest:
        """Current manifest of a source's store. Never touches the network."""
        return self.entry(selector).manifest()

    def options_status(self) -> CacheManifest:
        return CacheEntry(self.cache_dir, OPTIONS_STEM, extension="json").manifest()

    async def ensure(self, selector: SourceSelector) -> Path:
        """
        Return the path of a store that matches the current remote version,
        rebuilding it first if needed.
        """
        self._ensure_cache_dir()
        source = await self.resolver.source_for(selector)
        version = await self.resolver.resolve(source)
        entry = CacheEntry(self.cache_dir, source.stem)

        async with self._lock_for(entry.artifact_path):
            if entry.is_fresh(version):
                logger.debug(f"No new version of {source.channel} found, using {entry.artifact_path}")
                return entry.artifact_path

            logger.info(f"Updating {entry.artifact_path} to {source.channel} {version}")
            document = await self.downloader.fetch(source)
            await asyncio.to_thread(self.builder.build, document, entry.artifact_path)
            entry.write_marker(version)

        return entry.artifact_path

    async def ensure_options(self) -> Path:
        """
        Return the path of an up-to-date NixOS options document.

        `nixosoptions.ver` holds the prefix-stripped version, the same form as
        the package store markers, so one resolved version checks both.
        """
        self._ensure_cache_dir()
        source = await self.resolver.source_for(SourceSelector.SYSTEM)
        version = await self.resolver.resolve(source)
        entry = CacheEntry(self.cache_dir, OPTIONS_STEM, extension="json")

        async with self._lock_for(entry.artifact_path):
            if entry.is_fresh(version):
                logger.debug(f"No new version of {source.channel} options found")
                return entry.artifact_path

            await self.downloader.download(source.options_url, entry.artifact_path)
            entry.write_marker(version)

        return entry.artifact_path
