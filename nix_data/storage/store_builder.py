"""
Rebuild a SQLite package store from a decoded index document.

The store is always rebuilt from scratch: the upstream document carries no
change log to apply incrementally.
"""
from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any, List, Optional, Tuple

from nix_data.domain.errors import NixDataError, StoreError
from nix_data.domain.models import (
    ExtendedPackageDocument,
    Homepage,
    IndexDocument,
    IndexVariant,
)
from nix_data.storage.bulk_loader import BulkLoader, Row

logger = logging.getLogger(__name__)

PKGS_COLUMNS: Tuple[str, ...] = ("attribute", "system", "pname", "version")
PLAIN_PKGS_COLUMNS: Tuple[str, ...] = ("attribute", "pname", "version")
META_COLUMNS: Tuple[str, ...] = (
    "attribute",
    "broken",
    "insecure",
    "unsupported",
    "unfree",
    "description",
    "longdescription",
    "homepage",
    "maintainers",
    "position",
    "license",
    "platforms",
)

_EXTENDED_SCHEMA = (
    """
    CREATE TABLE "pkgs" (
        "attribute" TEXT NOT NULL UNIQUE,
        "system"    TEXT,
        "pname"     TEXT,
        "version"   TEXT,
        PRIMARY KEY("attribute")
    )
    """,
    """
    CREATE TABLE "meta" (
        "attribute"       TEXT NOT NULL UNIQUE,
        "broken"          INTEGER,
        "insecure"        INTEGER,
        "unsupported"     INTEGER,
        "unfree"          INTEGER,
        "description"     TEXT,
        "longdescription" TEXT,
        "homepage"        TEXT,
        "maintainers"     TEXT,
        "position"        TEXT,
        "license"         TEXT,
        "platforms"       TEXT,
        FOREIGN KEY("attribute") REFERENCES "pkgs"("attribute"),
        PRIMARY KEY("attribute")
    )
    """,
    'CREATE UNIQUE INDEX "attributes" ON "pkgs" ("attribute")',
    'CREATE UNIQUE INDEX "metaattributes" ON "meta" ("attribute")',
    'CREATE INDEX "pnames" ON "pkgs" ("pname")',
)

_PLAIN_SCHEMA = (
    """
    CREATE TABLE "pkgs" (
        "attribute" TEXT NOT NULL UNIQUE,
        "pname"     TEXT,
        "version"   TEXT,
        PRIMARY KEY("attribute")
    )
    """,
    'CREATE UNIQUE INDEX "attributes" ON "pkgs" ("attribute")',
    'CREATE INDEX "pnames" ON "pkgs" ("pname")',
)


def flag(value: Optional[bool]) -> int:
    """true -> 1, false or absent -> 0."""
    return 1 if value else 0


def first_homepage(homepage: Optional[Homepage]) -> str:
    """Collapse a homepage (single URL or list of URLs) to one string."""
    if homepage is None:
        return ""
    if isinstance(homepage, list):
        return homepage[0] if homepage else ""
    return homepage


def to_json_text(value: Any) -> str:
    """Serialize a structured value verbatim; empty when absent or not serializable."""
    if value is None:
        return ""
    try:
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False, allow_nan=False)
    except (TypeError, ValueError):
        return ""


def pkgs_row(attribute: str, entry: Any, variant: IndexVariant) -> Row:
    if variant is IndexVariant.EXTENDED:
        return (attribute, entry.system or "", entry.pname, entry.version)
    return (attribute, entry.pname, entry.version)


def meta_row(attribute: str, entry: ExtendedPackageDocument) -> Row:
    meta = entry.meta
    return (
        attribute,
        flag(meta.broken),
        flag(meta.insecure),
        flag(meta.unsupported),
        flag(meta.unfree),
        meta.description or "",
        meta.longdescription or "",
        first_homepage(meta.homepage),
        to_json_text(meta.maintainers),
        meta.position or "",
        to_json_text(meta.license),
        to_json_text(meta.platforms),
    )


def transform(document: IndexDocument) -> Tuple[List[Row], List[Row]]:
    """Turn every document entry into a `pkgs` row and, for extended documents, a `meta` row."""
    pkgs: List[Row] = []
    meta: List[Row] = []
    for attribute, entry in document.packages.items():
        pkgs.append(pkgs_row(attribute, entry, document.variant))
        if document.variant is IndexVariant.EXTENDED:
            meta.append(meta_row(attribute, entry))
    return pkgs, meta


class StoreBuilder:
    """Creates the schema of a fresh store and bulk-loads a document into it."""

    def __init__(self, loader: BulkLoader):
        self.loader = loader

    def create_schema(self, db_path: Path, variant: IndexVariant) -> None:
        statements = _EXTENDED_SCHEMA if variant is IndexVariant.EXTENDED else _PLAIN_SCHEMA
        try:
            conn = sqlite3.connect(str(db_path))
        except sqlite3.Error as e:
            raise StoreError(f"Failed to create store {db_path}: {e}") from e
        try:
            with conn:
                for statement in statements:
                    conn.execute(statement)
        except sqlite3.Error as e:
            raise StoreError(f"Failed to create schema in {db_path}: {e}") from e
        finally:
            conn.close()

    def build(self, document: IndexDocument, db_path: Path) -> Path:
        """
        Replace whatever is at `db_path` with a store holding `document`.

        Returns only once both bulk loads have succeeded. On failure the
        partially built file is removed and the error re-raised.
        """
        logger.info(f"Rebuilding {db_path} from {len(document)} {document.variant.value} entries")

        try:
            db_path.unlink(missing_ok=True)
        except OSError as e:
            raise StoreError(f"Failed to remove old store {db_path}: {e}") from e

        try:
            self.create_schema(db_path, document.variant)
            pkgs, meta = transform(document)

            columns = PKGS_COLUMNS if document.variant is IndexVariant.EXTENDED else PLAIN_PKGS_COLUMNS
            self.loader.load(db_path, "pkgs", columns, pkgs)
            if document.variant is IndexVariant.EXTENDED:
                self.loader.load(db_path, "meta", META_COLUMNS, meta)
        except NixDataError:
            logger.error(f"Rebuild of {db_path} failed", exc_info=True)
            db_path.unlink(missing_ok=True)
            raise

        logger.info(f"Rebuilt {db_path}: {len(pkgs)} packages, {len(meta)} meta rows")
        return db_path
