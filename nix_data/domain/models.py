from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class IndexVariant(str, Enum):
    """Schema variant of a remote index document."""

    EXTENDED = "extended"
    PLAIN = "plain"


class SourceSelector(str, Enum):
    """Remote index sources that can be cached locally."""

    SYSTEM = "system"
    LEGACY = "legacy"
    FLAKE = "flake"


# ---------------------------------------------------------------------------
# Remote index document
# ---------------------------------------------------------------------------

# A homepage is either a single URL or a list of URLs. It is collapsed to one
# string only when rows are built for the store.
Homepage = Union[str, List[str]]


class PackageMetaDocument(BaseModel):
    """
    The nested `meta` block of an extended index entry.

    The four flags are required booleans on the model. When the upstream
    document leaves one out it decodes to False.
    """

    model_config = ConfigDict(extra="ignore")

    broken: bool = False
    insecure: bool = False
    unsupported: bool = False
    unfree: bool = False
    description: Optional[str] = None
    longdescription: Optional[str] = None
    homepage: Optional[Homepage] = None
    maintainers: Optional[Any] = None
    license: Optional[Any] = None
    platforms: Optional[Any] = None
    position: Optional[str] = None


class ExtendedPackageDocument(BaseModel):
    """Entry of the system index, carrying full metadata."""

    model_config = ConfigDict(extra="ignore")

    system: Optional[str] = None
    pname: str
    version: str
    meta: PackageMetaDocument = Field(default_factory=PackageMetaDocument)


class PlainPackageDocument(BaseModel):
    """Entry of a channel/flake index: name and version only."""

    model_config = ConfigDict(extra="ignore")

    pname: str
    version: str


class IndexDocument(BaseModel):
    """A decoded index document of either variant."""

    variant: IndexVariant
    packages: Dict[str, Union[ExtendedPackageDocument, PlainPackageDocument]] = Field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.packages)


# ---------------------------------------------------------------------------
# Store rows
# ---------------------------------------------------------------------------

class PackageRecord(BaseModel):
    """One row of the `pkgs` table."""

    attribute: str
    system: Optional[str] = None
    pname: str
    version: str


class PackageMeta(BaseModel):
    """One row of the `meta` table (extended stores only)."""

    attribute: str
    broken: bool = False
    insecure: bool = False
    unsupported: bool = False
    unfree: bool = False
    description: str = ""
    longdescription: str = ""
    homepage: str = ""
    maintainers: str = ""
    position: str = ""
    license: str = ""
    platforms: str = ""


class PackageDetails(BaseModel):
    """A package record together with its metadata, when the store has any."""

    package: PackageRecord
    meta: Optional[PackageMeta] = None


# ---------------------------------------------------------------------------
# Cache bookkeeping
# ---------------------------------------------------------------------------

class CacheManifest(BaseModel):
    """Where a cache artifact lives and which version it holds."""

    artifact_path: str = Field(description="Path to the cached artifact file")
    marker_path: str = Field(description="Path to the plain-text version marker")
    version: Optional[str] = Field(default=None, description="Version recorded in the marker, if any")
    exists: bool = Field(default=False, description="Whether the artifact file is present")
    last_built: Optional[datetime] = Field(default=None, description="Modification time of the artifact")


class Resolution(BaseModel):
    """Result of resolving declared attributes against a store."""

    versions: Dict[str, str] = Field(default_factory=dict)
    unresolved: List[str] = Field(
        default_factory=list,
        description="Attributes with zero or several matching rows. Diagnostic only.",
    )
