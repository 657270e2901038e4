from typing import Optional

import httpx

from nix_data.core.config import CacheConfig, load_config
from nix_data.data.declarations import AttributeCollector
from nix_data.services.caching import CacheManager
from nix_data.services.importer.index_downloader import IndexDownloader
from nix_data.services.importer.version_resolver import VersionResolver
from nix_data.services.resolution import PackageVersionService
from nix_data.storage.bulk_loader import create_bulk_loader
from nix_data.storage.store_builder import StoreBuilder

_config: Optional[CacheConfig] = None
_cache_manager: Optional[CacheManager] = None
_version_service: Optional[PackageVersionService] = None


def build_cache_manager(
    config: CacheConfig,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> CacheManager:
    return CacheManager(
        config,
        VersionResolver(config, transport=transport),
        IndexDownloader(config, transport=transport),
        StoreBuilder(create_bulk_loader(config)),
    )


def build_version_service(config: CacheConfig, cache: CacheManager) -> PackageVersionService:
    return PackageVersionService(config, cache, AttributeCollector(key=config.declaration_key))


def get_config() -> CacheConfig:
    global _config
    if _config is None:
        _config = load_config()
    return _config

def get_cache_manager() -> CacheManager:
    global _cache_manager
    if _cache_manager is None:
        _cache_manager = build_cache_manager(get_config())
    return _cache_manager

def get_version_service() -> PackageVersionService:
    global _version_service
    if _version_service is None:
        _version_service = build_version_service(get_config(), get_cache_manager())
    return _version_service
