"""Tests for parquet access."""

import asyncio

import pytest

from loupe.core.exceptions import CorruptFileError, ResourceNotFoundError
from loupe.formats.parquet import ParquetAccessor, validate_magic
from loupe.session import SessionCache

from conftest import FakeTransport, parquet_bytes


@pytest.fixture
def shard() -> bytes:
    """Ten rows written as row groups of three."""
    return parquet_bytes(
        {"index": list(range(100, 110)), "value": [i * 0.5 for i in range(10)]},
        row_group_size=3,
    )


class TestMagic:
    """Tests for magic byte validation."""

    def test_valid(self, shard):
        validate_magic("u", shard)

    def test_html_error_page(self):
        with pytest.raises(CorruptFileError) as exc_info:
            validate_magic("u", b"<!DOCTYPE html><html>Too many requests</html>")
        assert exc_info.value.offending_bytes == b"<!DO"

    def test_truncated_footer(self, shard):
        with pytest.raises(CorruptFileError) as exc_info:
            validate_magic("u", shard[:-10])
        assert "footer" in exc_info.value.reason

    def test_too_short(self):
        with pytest.raises(CorruptFileError):
            validate_magic("u", b"PAR1")


class TestParquetAccessor:
    """Tests for ParquetAccessor."""

    def make(self, files=None):
        transport = FakeTransport(files)
        return transport, ParquetAccessor(transport, SessionCache())

    def test_fetch_bytes_cached(self, shard):
        transport, accessor = self.make({"u": shard})

        async def run():
            await asyncio.gather(accessor.fetch_bytes("u"), accessor.fetch_bytes("u"))
            return await accessor.fetch_bytes("u")

        assert asyncio.run(run()) == shard
        assert transport.fetches["u"] == 1

    def test_fetch_bytes_corrupt(self):
        _, accessor = self.make({"u": b"<html>nope</html>"})
        with pytest.raises(CorruptFileError):
            asyncio.run(accessor.fetch_bytes("u"))

    def test_not_found_remembered(self):
        transport, accessor = self.make()

        async def run():
            for _ in range(2):
                with pytest.raises(ResourceNotFoundError):
                    await accessor.fetch_bytes("missing")

        asyncio.run(run())
        assert transport.fetches["missing"] == 1

    def test_exists(self, shard):
        transport, accessor = self.make({"u": shard})
        assert asyncio.run(accessor.exists("u")) is True
        assert asyncio.run(accessor.exists("u")) is True
        assert asyncio.run(accessor.exists("other")) is False
        assert transport.probes["u"] == 1

    def test_read_columns(self, shard):
        _, accessor = self.make()
        rows = accessor.read_columns(shard, ["index", "missing"])
        assert len(rows) == 10
        assert rows[0] == {"index": 100}

    def test_read_no_known_columns(self, shard):
        _, accessor = self.make()
        assert accessor.read_columns(shard, ["missing"]) == []

    def test_row_range_across_row_groups(self, shard):
        _, accessor = self.make()
        rows = accessor.read_columns(shard, ["index"], row_range=(2, 7))
        assert [row["index"] for row in rows] == [102, 103, 104, 105, 106]

    def test_row_range_past_end(self, shard):
        _, accessor = self.make()
        rows = accessor.read_columns(shard, ["index"], row_range=(8, 20))
        assert [row["index"] for row in rows] == [108, 109]
        assert accessor.read_columns(shard, ["index"], row_range=(20, 30)) == []
        assert accessor.read_columns(shard, ["index"], row_range=(5, 5)) == []

    def test_schema_and_num_rows(self, shard):
        _, accessor = self.make()
        assert accessor.schema_names(shard) == ["index", "value"]
        assert accessor.num_rows(shard) == 10

    def test_undecodable_file(self):
        _, accessor = self.make()
        with pytest.raises(CorruptFileError):
            accessor.read_columns(b"PAR1garbagePAR1", ["index"])

    def test_read_frame(self, shard):
        _, accessor = self.make()
        frame = accessor.read_frame(shard)
        assert list(frame.columns) == ["index", "value"]
        assert len(frame) == 10
