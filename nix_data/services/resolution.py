"""
Resolve declared packages to the versions currently available upstream.
"""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Dict, Iterable, Optional, Set

from nix_data.core.config import CacheConfig
from nix_data.data.declarations import AttributeCollector
from nix_data.data.package_index import PackageIndexReader
from nix_data.domain.models import PackageDetails, Resolution, SourceSelector
from nix_data.services.caching import CacheManager

logger = logging.getLogger(__name__)


def _query(db_path: Path, attributes: Set[str]) -> Resolution:
    with PackageIndexReader(db_path) as reader:
        return reader.resolve(sorted(attributes))


def _get_package(db_path: Path, attribute: str) -> Optional[PackageDetails]:
    with PackageIndexReader(db_path) as reader:
        return reader.get_package(attribute)


class PackageVersionService:
    """collect declarations -> ensure a fresh store -> look every attribute up."""

    def __init__(self, config: CacheConfig, cache: CacheManager, collector: AttributeCollector):
        self.config = config
        self.cache = cache
        self.collector = collector

    async def resolve(
        self,
        source: SourceSelector,
        declaration_paths: Optional[Iterable[str]] = None,
    ) -> Resolution:
        """Like `resolve_versions`, but also reports which attributes were dropped."""
        paths = list(declaration_paths) if declaration_paths is not None else self.config.declaration_paths
        attributes = self.collector.collect(paths)
        logger.info(f"Collected {len(attributes)} declared attribute(s) from {len(paths)} source(s)")

        db_path = await self.cache.ensure(source)
        # sqlite3 connections stay on the worker thread that opened them.
        return await asyncio.to_thread(_query, db_path, attributes)

    async def resolve_versions(
        self,
        source: SourceSelector,
        declaration_paths: Optional[Iterable[str]] = None,
    ) -> Dict[str, str]:
        """
        Map every declared attribute that has exactly one match in the store to its version.

        Attributes with no match, or several, are left out.
        """
        resolution = await self.resolve(source, declaration_paths)
        return resolution.versions

    async def get_package(self, source: SourceSelector, attribute: str) -> Optional[PackageDetails]:
        db_path = await self.cache.ensure(source)
        return await asyncio.to_thread(_get_package, db_path, attribute)
