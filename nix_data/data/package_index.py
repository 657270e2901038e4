"""
Query a built package store.
"""
from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Iterable, List, Optional

from pydantic import ValidationError

from nix_data.domain.errors import StoreError
from nix_data.domain.models import PackageDetails, PackageMeta, PackageRecord, Resolution

logger = logging.getLogger(__name__)


class PackageIndexReader:
    """Reads and queries a package store built by StoreBuilder."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self.conn: Optional[sqlite3.Connection] = None

    def connect(self):
        """Open connection to the store."""
        if self.conn is None:
            if not self.db_path.exists():
                logger.error(f"Package store not found: {self.db_path}")
                raise StoreError(f"Package store not found: {self.db_path}")
            try:
                self.conn = sqlite3.connect(str(self.db_path))
            except sqlite3.Error as e:
                raise StoreError(f"Failed to open {self.db_path}: {e}") from e
            self.conn.row_factory = sqlite3.Row

    def close(self):
        """Close database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None

    @property
    def has_meta(self) -> bool:
        """Whether this is an extended store with a `meta` table."""
        self.connect()
        row = self.conn.execute(
            "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = 'meta'"
        ).fetchone()
        return row is not None

    def lookup_version(self, attribute: str) -> Optional[str]:
        """
        Version of `attribute`, or None when zero or several rows match.

        Callers cannot tell "unknown" from "ambiguous"; both mean unresolved.
        """
        self.connect()
        try:
            rows = self.conn.execute(
                "SELECT pname, version FROM pkgs WHERE attribute = ?", (attribute,)
            ).fetchall()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to query {attribute}: {e}") from e
        if len(rows) != 1:
            return None
        return rows[0]["version"]

    def resolve(self, attributes: Iterable[str]) -> Resolution:
        """Point-resolve every attribute, one lookup each."""
        result = Resolution()
        unresolved: List[str] = []
        for attribute in attributes:
            version = self.lookup_version(attribute)
            if version is None:
                unresolved.append(attribute)
            else:
                result.versions[attribute] = version
        result.unresolved = sorted(unresolved)
        if unresolved:
            logger.debug(f"{len(unresolved)} attribute(s) unresolved in {self.db_path}")
        return result

    def get_package(self, attribute: str) -> Optional[PackageDetails]:
        """Full record of `attribute` plus its metadata in extended stores."""
        self.connect()
        try:
            row = self.conn.execute(
                "SELECT * FROM pkgs WHERE attribute = ? LIMIT 1", (attribute,)
            ).fetchone()
            if not row:
                return None
            record = PackageRecord(**dict(row))

            meta = None
            if self.has_meta:
                meta_row = self.conn.execute(
                    "SELECT * FROM meta WHERE attribute = ? LIMIT 1", (attribute,)
                ).fetchone()
                if meta_row:
                    meta = PackageMeta(**dict(meta_row))
        except sqlite3.Error as e:
            raise StoreError(f"Failed to query {attribute}: {e}") from e
        except ValidationError as e:
            raise StoreError(f"Unexpected row shape for {attribute} in {self.db_path}: {e}") from e
        return PackageDetails(package=record, meta=meta)

    def find_by_pname(self, pname: str) -> List[PackageRecord]:
        """All records whose display name is `pname`."""
        self.connect()
        try:
            rows = self.conn.execute(
                "SELECT * FROM pkgs WHERE pname = ? ORDER BY attribute", (pname,)
            ).fetchall()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to query pname {pname}: {e}") from e
        try:
            return [PackageRecord(**dict(row)) for row in rows]
        except ValidationError as e:
            raise StoreError(f"Unexpected row shape for pname {pname} in {self.db_path}: {e}") from e

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
