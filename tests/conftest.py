"""Shared fixtures: configuration, sample index documents and a fake channel server."""

from __future__ import annotations

import json
from collections import Counter
from typing import Optional

import brotli
import httpx
import pytest

from nix_data.core.config import CacheConfig

BASE_URL = "https://channels.test"
RELEASES_URL = "https://releases.test"

EXTENDED_DOC = {
    "firefox": {
        "system": "x86_64-linux",
        "pname": "firefox",
        "version": "115.0",
        "meta": {
            "broken": False,
            "insecure": True,
            "unsupported": False,
            "unfree": True,
            "description": "A web browser",
            "longdescription": 'Long, "quoted"\ndescription, with commas',
            "homepage": ["https://x", "https://y"],
            "maintainers": [{"name": "Alice", "github": "alice"}],
            "license": {"spdxId": "MPL-2.0", "free": True},
            "platforms": ["x86_64-linux", "aarch64-linux"],
            "position": "pkgs/applications/firefox/default.nix:10",
        },
    },
    "hello": {
        "system": "x86_64-linux",
        "pname": "hello",
        "version": "2.12.1",
        "meta": {},
    },
}

PLAIN_DOC = {
    "pkgA": {"pname": "a", "version": "1.0"},
    "pkgB": {"pname": "b", "version": "2.0"},
}


class ChannelServer:
    """
    In-memory channel server.

    `/<channel>` redirects to a release URL ending in `<prefix><version>`;
    `/<channel>/packages.json.br` and `/<channel>/options.json.br` serve documents.
    """

    def __init__(self, version: str = "23.05.1234.abcdef", document: Optional[dict] = None):
        self.version = version
        self.document = document if document is not None else EXTENDED_DOC
        self.options = {"services.nginx.enable": {"type": "boolean"}}
        self.index_status = 200
        self.compress = True
        self.content_encoding = True
        self.calls: Counter = Counter()

    def _body(self, payload: dict) -> tuple[bytes, dict]:
        body = json.dumps(payload).encode("utf-8")
        headers = {"Content-Type": "application/json"}
        if self.compress:
            body = brotli.compress(body)
            if self.content_encoding:
                headers["Content-Encoding"] = "br"
        return body, headers

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        path = request.url.path
        if url.startswith(RELEASES_URL):
            self.calls["release"] += 1
            return httpx.Response(200, text="release page")

        if path.endswith("/packages.json.br"):
            self.calls["index"] += 1
            if self.index_status != 200:
                return httpx.Response(self.index_status, text="nope")
            body, headers = self._body(self.document)
            return httpx.Response(200, content=body, headers=headers)

        if path.endswith("/options.json.br"):
            self.calls["options"] += 1
            body, headers = self._body(self.options)
            return httpx.Response(200, content=body, headers=headers)

        channel = path.strip("/")
        self.calls["version"] += 1
        prefix = "nixpkgs-" if channel.startswith("nixpkgs") else "nixos-"
        location = f"{RELEASES_URL}/nixos/23.05/{prefix}{self.version}"
        return httpx.Response(302, headers={"Location": location})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture()
def config(tmp_path):
    return CacheConfig(
        cache_dir=tmp_path / "cache",
        channels_base_url=BASE_URL,
        release="23.05",
        http_timeout=5.0,
        declaration_paths=[],
    )


@pytest.fixture()
def server():
    return ChannelServer()
