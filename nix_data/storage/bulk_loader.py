"""
Bulk loading of rows into a table of a SQLite store.
"""
from __future__ import annotations

import csv
import io
import logging
import sqlite3
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Sequence, Tuple

from nix_data.core.config import CacheConfig
from nix_data.domain.errors import StoreError, SubprocessError

logger = logging.getLogger(__name__)

Row = Tuple[object, ...]


class BulkLoader(ABC):
    """
    Loads many rows into one table in a single batch.

    Rows must follow the column order of the table's schema.
    """

    @abstractmethod
    def load(self, db_path: Path, table: str, columns: Sequence[str], rows: Sequence[Row]) -> int:
        """Load `rows` into `table` and return the number of rows loaded."""
        pass


class SqliteBulkLoader(BulkLoader):
    """In-process loader: one prepared INSERT run over all rows in one transaction."""

    def load(self, db_path: Path, table: str, columns: Sequence[str], rows: Sequence[Row]) -> int:
        column_list = ", ".join(f'"{c}"' for c in columns)
        placeholders = ", ".join("?" for _ in columns)
        sql = f'INSERT INTO "{table}" ({column_list}) VALUES ({placeholders})'

        try:
            conn = sqlite3.connect(str(db_path))
        except sqlite3.Error as e:
            raise StoreError(f"Failed to open {db_path}: {e}") from e
        try:
            with conn:
                conn.executemany(sql, rows)
        except sqlite3.Error as e:
            raise StoreError(f"Bulk load into {table} failed: {e}") from e
        finally:
            conn.close()

        logger.debug(f"Loaded {len(rows)} rows into {table}")
        return len(rows)


def rows_to_csv(rows: Sequence[Row]) -> str:
    """Serialize rows as CSV, quoting embedded delimiters, quotes and newlines."""
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    for row in rows:
        writer.writerow("" if value is None else value for value in row)
    return buf.getvalue()


class Sqlite3CliBulkLoader(BulkLoader):
    """
    External loader: pipes CSV into `sqlite3 -csv <db> ".import '|cat -' <table>"`.

    The table must already exist so that every CSV line is taken as data.
    """

    def __init__(self, binary: str = "sqlite3"):
        self.binary = binary

    def load(self, db_path: Path, table: str, columns: Sequence[str], rows: Sequence[Row]) -> int:
        data = rows_to_csv(rows)
        cmd = [self.binary, "-bail", "-csv", str(db_path), f".import '|cat -' {table}"]
        logger.debug(f"Running {' '.join(cmd)}")
        try:
            result = subprocess.run(
                cmd,
                input=data,
                capture_output=True,
                text=True,
                encoding="utf-8",
            )
        except OSError as e:
            raise SubprocessError(f"Failed to start {self.binary}: {e}") from e

        # sqlite3 reports per-line import problems on stderr even when it exits 0.
        stderr = result.stderr.strip()
        if result.returncode != 0 or stderr:
            raise SubprocessError(
                f"{self.binary} import into {table} failed (exit {result.returncode}): {stderr}",
                returncode=result.returncode,
                stderr=stderr,
            )

        logger.debug(f"Imported {len(rows)} rows into {table}")
        return len(rows)


def create_bulk_loader(config: CacheConfig) -> BulkLoader:
    """Loader selected by `config.bulk_loader`."""
    if config.bulk_loader == "sqlite3-cli":
        return Sqlite3CliBulkLoader(config.sqlite3_binary)
    return SqliteBulkLoader()
