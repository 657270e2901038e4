from __future__ import annotations

from typing import List, Optional
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from nix_data.core.dependencies import get_cache_manager, get_version_service
from nix_data.domain.models import CacheManifest, PackageDetails, Resolution, SourceSelector
from nix_data.services.caching import CacheManager
from nix_data.services.resolution import PackageVersionService

logger = logging.getLogger(__name__)
router = APIRouter()


class ResolveRequest(BaseModel):
    """Which index to resolve against and which declaration files to read."""

    source: SourceSelector = Field(description="Index source: system, legacy or flake.")
    paths: Optional[List[str]] = Field(
        default=None,
        description="Declaration files. Defaults to the configured declaration_paths.",
    )


class OptionsResponse(BaseModel):
    path: str
    manifest: CacheManifest


# ---------------------------------------------------------------------------
# Version resolution
# ---------------------------------------------------------------------------

@router.post("/versions/resolve", response_model=Resolution)
async def resolve_versions(
    body: ResolveRequest,
    service: PackageVersionService = Depends(get_version_service),
) -> Resolution:
    """
    Resolve every declared package to its current version.

    `unresolved` lists attributes that matched no package (or several) and
    is informational only.
    """
    return await service.resolve(body.source, body.paths)


@router.get("/packages/{source}/{attribute}", response_model=PackageDetails)
async def get_package(
    source: SourceSelector,
    attribute: str,
    service: PackageVersionService = Depends(get_version_service),
) -> PackageDetails:
    details = await service.get_package(source, attribute)
    if details is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Package not found: {attribute}")
    return details


# ---------------------------------------------------------------------------
# Cache management
# ---------------------------------------------------------------------------

@router.get("/cache/{source}", response_model=CacheManifest)
async def cache_status(
    source: SourceSelector,
    cache: CacheManager = Depends(get_cache_manager),
) -> CacheManifest:
    return cache.status(source)


@router.post("/cache/{source}/refresh", response_model=CacheManifest)
async def refresh_cache(
    source: SourceSelector,
    cache: CacheManager = Depends(get_cache_manager),
) -> CacheManifest:
    """Bring the source's store up to date with the remote channel."""
    await cache.ensure(source)
    return cache.status(source)


@router.post("/cache/system/options/refresh", response_model=OptionsResponse)
async def refresh_options(cache: CacheManager = Depends(get_cache_manager)) -> OptionsResponse:
    path = await cache.ensure_options()
    return OptionsResponse(path=str(path), manifest=cache.options_status())
