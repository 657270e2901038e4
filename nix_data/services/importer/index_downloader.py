"""
Download a channel index document and decode it.
"""
from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import aiofiles
import brotli
import httpx
from pydantic import TypeAdapter, ValidationError

from nix_data.core.config import CacheConfig
from nix_data.domain.errors import DecodeError, FetchError
from nix_data.domain.models import (
    ExtendedPackageDocument,
    IndexDocument,
    IndexVariant,
    PlainPackageDocument,
)
from nix_data.domain.sources import IndexSource

logger = logging.getLogger(__name__)

ACCEPT_ENCODING = "br, gzip, deflate"

_EXTENDED_ADAPTER = TypeAdapter(Dict[str, ExtendedPackageDocument])
_PLAIN_ADAPTER = TypeAdapter(Dict[str, PlainPackageDocument])


def _unwrap_envelope(document: Dict[str, Any]) -> Dict[str, Any]:
    """
    Channel documents look like {"version": 2, "packages": {...}}. A bare
    attribute mapping is accepted as well, including one whose only
    attribute happens to be named `packages`: that value is a record
    (it has a `pname`), not a mapping of records.
    """
    packages = document.get("packages")
    if (
        isinstance(packages, dict)
        and "pname" not in packages
        and set(document) <= {"packages", "version"}
    ):
        return packages
    return document


def decode_document(payload: bytes, variant: IndexVariant) -> IndexDocument:
    """
    Decode an index document of the given variant.

    Any structural problem fails the whole document; no entry is accepted
    from a document that does not validate.
    """
    try:
        document = json.loads(payload)
    except ValueError as e:
        raise DecodeError(f"Index document is not valid JSON: {e}") from e

    if not isinstance(document, dict):
        raise DecodeError(f"Index document must be a JSON object, got {type(document).__name__}")

    adapter = _EXTENDED_ADAPTER if variant is IndexVariant.EXTENDED else _PLAIN_ADAPTER
    try:
        packages = adapter.validate_python(_unwrap_envelope(document))
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first["loc"])
        raise DecodeError(
            f"Malformed {variant.value} index entry at '{location}': {first['msg']} "
            f"({e.error_count()} error(s) total)"
        ) from e

    # Entries are already validated; skip a second pass over tens of thousands of models.
    return IndexDocument.model_construct(variant=variant, packages=packages)


def _looks_like_json(head: bytes) -> bool:
    stripped = head.lstrip()
    return stripped[:1] in (b"{", b"[")


class IndexDownloader:
    """Fetches remote documents with compression negotiated and decodes index documents."""

    def __init__(self, config: CacheConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self.transport = transport

    async def download(self, url: str, destination: Path) -> Path:
        """
        Stream `url` into `destination`, decompressed.

        The body goes to a temporary file first so a failed download never
        leaves a truncated document at `destination`.
        """
        destination.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = destination.with_name(destination.name + ".tmp")
        tmp_path.unlink(missing_ok=True)

        logger.info(f"Downloading {url}...")
        try:
            async with httpx.AsyncClient(
                follow_redirects=True,
                timeout=self.config.http_timeout,
                transport=self.transport,
                headers={"Accept-Encoding": ACCEPT_ENCODING},
            ) as client:
                async with client.stream("GET", url) as response:
                    if not response.is_success:
                        raise FetchError(f"Failed to download {url}: HTTP {response.status_code}")

                    downloaded = 0
                    async with aiofiles.open(tmp_path, "wb") as f:
                        async for chunk in response.aiter_bytes():
                            await f.write(chunk)
                            downloaded += len(chunk)
        except httpx.HTTPError as e:
            tmp_path.unlink(missing_ok=True)
            raise FetchError(f"Failed to download {url}: {e}") from e
        except FetchError:
            tmp_path.unlink(missing_ok=True)
            raise

        logger.debug(f"Downloaded {downloaded} bytes from {url}")

        # Some mirrors serve the .br file without a Content-Encoding header,
        # in which case the body is still brotli-compressed here.
        if url.endswith(".br"):
            async with aiofiles.open(tmp_path, "rb") as f:
                head = await f.read(64)
            if head and not _looks_like_json(head):
                async with aiofiles.open(tmp_path, "rb") as f:
                    compressed = await f.read()
                try:
                    data = await asyncio.to_thread(brotli.decompress, compressed)
                except brotli.error as e:
                    tmp_path.unlink(missing_ok=True)
                    raise DecodeError(f"Failed to decompress {url}: {e}") from e
                async with aiofiles.open(tmp_path, "wb") as f:
                    await f.write(data)
                logger.debug(f"Decompressed {len(compressed)} -> {len(data)} bytes")

        tmp_path.replace(destination)
        return destination

    async def fetch(self, source: IndexSource) -> IndexDocument:
        """Download the source's index document and decode it as its variant."""
        staging = self.config.cache_dir / f"{source.stem}.json"
        path = await self.download(source.index_url, staging)
        try:
            async with aiofiles.open(path, "rb") as f:
                payload = await f.read()
        finally:
            path.unlink(missing_ok=True)

        # Parsing and validating the whole index is CPU-bound; keep it off the loop.
        document = await asyncio.to_thread(decode_document, payload, source.variant)
        logger.info(f"Decoded {len(document)} {source.variant.value} entries from {source.index_url}")
        return document
