"""StoreBuilder tests"""

from __future__ import annotations

import json
import shutil
import sqlite3

import pytest

from nix_data.domain.errors import StoreError
from nix_data.domain.models import IndexVariant
from nix_data.services.importer.index_downloader import decode_document
from nix_data.storage.bulk_loader import BulkLoader, Sqlite3CliBulkLoader, SqliteBulkLoader
from nix_data.storage.store_builder import (
    StoreBuilder,
    first_homepage,
    flag,
    to_json_text,
    transform,
)

from conftest import EXTENDED_DOC, PLAIN_DOC

requires_sqlite3_cli = pytest.mark.skipif(
    shutil.which("sqlite3") is None, reason="sqlite3 binary not available"
)


def _decode(doc, variant):
    return decode_document(json.dumps(doc).encode("utf-8"), variant)


def _rows(db_path, sql):
    conn = sqlite3.connect(str(db_path))
    try:
        return conn.execute(sql).fetchall()
    finally:
        conn.close()


class TestTransformHelpers:

    def test_flag(self):
        assert flag(True) == 1
        assert flag(False) == 0
        assert flag(None) == 0

    def test_first_homepage(self):
        assert first_homepage(["https://x", "https://y"]) == "https://x"
        assert first_homepage("https://only") == "https://only"
        assert first_homepage(None) == ""
        assert first_homepage([]) == ""

    def test_to_json_text(self):
        assert to_json_text({"spdxId": "MIT"}) == '{"spdxId":"MIT"}'
        assert to_json_text(None) == ""

    def test_to_json_text_unserializable(self):
        assert to_json_text(float("nan")) == ""
        assert to_json_text({"x": object()}) == ""

    def test_transform_plain(self):
        pkgs, meta = transform(_decode(PLAIN_DOC, IndexVariant.PLAIN))
        assert sorted(pkgs) == [("pkgA", "a", "1.0"), ("pkgB", "b", "2.0")]
        assert meta == []

    def test_transform_extended_absent_meta(self):
        _, meta = transform(_decode(EXTENDED_DOC, IndexVariant.EXTENDED))
        hello = next(row for row in meta if row[0] == "hello")
        assert hello == ("hello", 0, 0, 0, 0, "", "", "", "", "", "", "")


@pytest.fixture(params=["sqlite", pytest.param("sqlite3-cli", marks=requires_sqlite3_cli)])
def builder(request) -> StoreBuilder:
    loader: BulkLoader = SqliteBulkLoader() if request.param == "sqlite" else Sqlite3CliBulkLoader()
    return StoreBuilder(loader)


class TestStoreBuilder:

    def test_plain_scenario(self, builder, tmp_path):
        db = builder.build(_decode(PLAIN_DOC, IndexVariant.PLAIN), tmp_path / "legacypkgs.db")
        rows = _rows(db, "SELECT attribute, pname, version FROM pkgs ORDER BY attribute")
        assert rows == [("pkgA", "a", "1.0"), ("pkgB", "b", "2.0")]
        tables = {r[0] for r in _rows(db, "SELECT name FROM sqlite_master WHERE type = 'table'")}
        assert tables == {"pkgs"}

    def test_extended_schema_and_indexes(self, builder, tmp_path):
        db = builder.build(_decode(EXTENDED_DOC, IndexVariant.EXTENDED), tmp_path / "nixospkgs.db")
        indexes = {r[0] for r in _rows(db, "SELECT name FROM sqlite_master WHERE type = 'index'")}
        assert {"attributes", "metaattributes", "pnames"} <= indexes
        assert _rows(db, "SELECT count(*) FROM meta") == [(2,)]

    def test_extended_meta_row(self, builder, tmp_path):
        db = builder.build(_decode(EXTENDED_DOC, IndexVariant.EXTENDED), tmp_path / "nixospkgs.db")
        row = _rows(
            db,
            "SELECT broken, insecure, unfree, homepage, longdescription, maintainers, license "
            "FROM meta WHERE attribute = 'firefox'",
        )[0]
        assert row[:3] == (0, 1, 1)
        assert row[3] == "https://x"
        assert row[4] == 'Long, "quoted"\ndescription, with commas'
        assert json.loads(row[5]) == [{"name": "Alice", "github": "alice"}]
        assert json.loads(row[6]) == {"spdxId": "MPL-2.0", "free": True}

    def test_rebuild_replaces_existing_store(self, builder, tmp_path):
        path = tmp_path / "legacypkgs.db"
        builder.build(_decode(PLAIN_DOC, IndexVariant.PLAIN), path)
        builder.build(_decode({"pkgZ": {"pname": "z", "version": "9"}}, IndexVariant.PLAIN), path)
        assert _rows(path, "SELECT attribute FROM pkgs") == [("pkgZ",)]

    def test_rebuild_over_garbage_file(self, builder, tmp_path):
        path = tmp_path / "legacypkgs.db"
        path.write_bytes(b"not a database")
        builder.build(_decode(PLAIN_DOC, IndexVariant.PLAIN), path)
        assert _rows(path, "SELECT count(*) FROM pkgs") == [(2,)]


class _FailingMetaLoader(SqliteBulkLoader):
    def load(self, db_path, table, columns, rows):
        if table == "meta":
            raise StoreError("meta load exploded")
        return super().load(db_path, table, columns, rows)


def test_failed_load_removes_partial_store(tmp_path):
    path = tmp_path / "nixospkgs.db"
    builder = StoreBuilder(_FailingMetaLoader())
    with pytest.raises(StoreError, match="exploded"):
        builder.build(_decode(EXTENDED_DOC, IndexVariant.EXTENDED), path)
    assert not path.exists()
