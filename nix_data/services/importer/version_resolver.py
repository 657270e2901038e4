"""
Discover the current version of a channel from its redirect target.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

import httpx

from nix_data.core.config import CacheConfig
from nix_data.domain.errors import ResolveError
from nix_data.domain.models import SourceSelector
from nix_data.domain.sources import UNSTABLE, VERSION_PREFIXES, IndexSource, build_source

logger = logging.getLogger(__name__)

RELEASE_COMMAND = "nixos-version"


def normalize_release(raw: str, rolling_release: str) -> str:
    """
    Reduce a raw release identifier (e.g. '23.05.1234.abcdef (Stoat)') to its
    first five characters. The rolling release maps to 'unstable'.
    """
    release = raw.strip()[:5]
    if release == rolling_release:
        return UNSTABLE
    return release


def version_from_url(url: httpx.URL) -> str:
    """
    Take the last path segment of a resolved channel URL and drop the
    channel prefix, e.g. '/nixos/23.05/nixos-23.05.1234.abcdef' -> '23.05.1234.abcdef'.
    """
    segments = [s for s in url.path.split("/") if s]
    if not segments:
        raise ResolveError(f"No path segments found in {url}")

    last = segments[-1]
    for prefix in VERSION_PREFIXES:
        if last.startswith(prefix):
            last = last[len(prefix):]
            break
    if not last:
        raise ResolveError(f"Could not isolate a version segment in {url}")
    return last


class VersionResolver:
    """Determines the canonical remote version tag of an index source."""

    def __init__(self, config: CacheConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self.transport = transport
        self._release: Optional[str] = None

    async def detect_release(self) -> str:
        """Normalized OS release, from configuration or `nixos-version`."""
        if self._release is not None:
            return self._release

        configured = self.config.release
        if configured is not None:
            # Configured releases are already in channel form (e.g. "23.11", "unstable").
            release = configured.strip()
            self._release = UNSTABLE if release == self.config.rolling_release else release
            logger.debug(f"Configured release: {self._release}")
            return self._release

        try:
            proc = await asyncio.create_subprocess_exec(
                RELEASE_COMMAND,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            stdout, stderr = await proc.communicate()
        except OSError as e:
            raise ResolveError(f"Failed to run {RELEASE_COMMAND}: {e}") from e
        if proc.returncode != 0:
            raise ResolveError(
                f"{RELEASE_COMMAND} exited with {proc.returncode}: {stderr.decode(errors='replace').strip()}"
            )
        raw = stdout.decode("utf-8", errors="replace")

        self._release = normalize_release(raw, self.config.rolling_release)
        logger.debug(f"Detected release: {self._release}")
        return self._release

    async def source_for(self, selector: SourceSelector) -> IndexSource:
        release = await self.detect_release()
        return build_source(
            selector,
            release,
            self.config.channels_base_url,
            channel=self.config.channels.get(selector),
        )

    async def resolve(self, source: IndexSource) -> str:
        """
        Follow the source's version URL and return the version it redirects to.

        Blocks on the network for at most `http_timeout` seconds.
        """
        try:
            async with httpx.AsyncClient(
                follow_redirects=True,
                timeout=self.config.http_timeout,
                transport=self.transport,
            ) as client:
                async with client.stream("GET", source.version_url) as response:
                    if not response.is_success:
                        raise ResolveError(
                            f"Version lookup for {source.channel} returned HTTP {response.status_code}"
                        )
                    final_url = response.url
        except httpx.HTTPError as e:
            raise ResolveError(f"Version lookup for {source.channel} failed: {e}") from e

        version = version_from_url(final_url)
        logger.info(f"Latest version of {source.channel}: {version}")
        return version
