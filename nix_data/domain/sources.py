"""
Remote index sources and where their documents live.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

from nix_data.domain.models import IndexVariant, SourceSelector

UNSTABLE = "unstable"

# Prefixes the channel server puts in front of the version segment.
VERSION_PREFIXES = ("nixos-", "nixpkgs-")

PACKAGES_DOCUMENT = "packages.json.br"
OPTIONS_DOCUMENT = "options.json.br"


@dataclass(frozen=True)
class IndexSource:
    """A concrete source: which channel to read and how to store it."""

    selector: SourceSelector
    stem: str
    variant: IndexVariant
    channel: str
    base_url: str

    @property
    def version_url(self) -> str:
        return f"{self.base_url}/{self.channel}"

    @property
    def index_url(self) -> str:
        return f"{self.base_url}/{self.channel}/{PACKAGES_DOCUMENT}"

    @property
    def options_url(self) -> str:
        return f"{self.base_url}/{self.channel}/{OPTIONS_DOCUMENT}"


_STEMS: Dict[SourceSelector, str] = {
    SourceSelector.SYSTEM: "nixospkgs",
    SourceSelector.LEGACY: "legacypkgs",
    SourceSelector.FLAKE: "flakespkgs",
}

_VARIANTS: Dict[SourceSelector, IndexVariant] = {
    SourceSelector.SYSTEM: IndexVariant.EXTENDED,
    SourceSelector.LEGACY: IndexVariant.PLAIN,
    SourceSelector.FLAKE: IndexVariant.PLAIN,
}


def default_channel(selector: SourceSelector, release: str) -> str:
    """Channel name a selector reads for a normalized release."""
    if selector is SourceSelector.FLAKE and release == UNSTABLE:
        return "nixpkgs-unstable"
    return f"nixos-{release}"


def build_source(
    selector: SourceSelector,
    release: str,
    base_url: str,
    channel: Optional[str] = None,
) -> IndexSource:
    return IndexSource(
        selector=selector,
        stem=_STEMS[selector],
        variant=_VARIANTS[selector],
        channel=channel or default_channel(selector, release),
        base_url=base_url.rstrip("/"),
    )


def stem_for(selector: SourceSelector) -> str:
    return _STEMS[selector]


def variant_for(selector: SourceSelector) -> IndexVariant:
    return _VARIANTS[selector]
