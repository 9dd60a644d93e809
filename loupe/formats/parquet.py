"""Parquet access for remote dataset files.

Fetched buffers are cached per URL in the session, so a shard shared by many
episodes is downloaded once. Reads are column- and row-group-selective.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq

from loupe.core.exceptions import CorruptFileError, ResourceNotFoundError

if TYPE_CHECKING:
    from loupe.core.protocols import Transport
    from loupe.session import SessionCache

logger = logging.getLogger(__name__)

PARQUET_MAGIC = b"PAR1"


def validate_magic(url: str, data: bytes) -> None:
    """Check the parquet header and footer magic.

    Raises:
        CorruptFileError: With the offending bytes if either magic is wrong.
    """
    if len(data) < 2 * len(PARQUET_MAGIC):
        raise CorruptFileError(url, bytes(data[:4]), reason="file too short")
    head, tail = bytes(data[:4]), bytes(data[-4:])
    if head != PARQUET_MAGIC:
        raise CorruptFileError(url, head, reason="bad header magic")
    if tail != PARQUET_MAGIC:
        raise CorruptFileError(url, tail, reason="bad footer magic")


class ParquetAccessor:
    """Fetches and reads parquet files.

    Usage:
        accessor = ParquetAccessor(transport, cache)
        data = await accessor.fetch_bytes(url)
        rows = accessor.read_columns(data, ["index", "action"], row_range=(10, 20))
    """

    def __init__(self, transport: Transport, cache: SessionCache):
        self._transport = transport
        self._cache = cache

    async def fetch_raw(self, url: str) -> bytes:
        """Fetch any file through the session buffer cache.

        At most one network fetch is made per URL; concurrent callers share
        it and not-found results are remembered.
        """
        return await self._cache.buffers.get_or_create(url, lambda: self._transport.fetch(url))

    async def fetch_bytes(self, url: str) -> bytes:
        """Fetch a parquet file and validate its magic bytes.

        Raises:
            ResourceNotFoundError: If the file does not exist.
            CorruptFileError: If the bytes are not a parquet file.
        """
        data = await self.fetch_raw(url)
        validate_magic(url, data)
        return data

    async def exists(self, url: str) -> bool:
        """Whether a file is already cached or can be found remotely."""
        if self._cache.buffers.peek(url) is not None:
            return True
        try:
            return await self._cache.existence.get_or_create(
                url, lambda: self._transport.exists(url)
            )
        except ResourceNotFoundError:
            return False

    def _open(self, data: bytes, url: str) -> pq.ParquetFile:
        try:
            return pq.ParquetFile(pa.BufferReader(data))
        except (pa.ArrowException, OSError) as e:
            raise CorruptFileError(url, bytes(data[:4]), reason=str(e)) from e

    def schema_names(self, data: bytes, url: str = "<buffer>") -> list[str]:
        """Column names stored in the file."""
        return list(self._open(data, url).schema_arrow.names)

    def num_rows(self, data: bytes, url: str = "<buffer>") -> int:
        return self._open(data, url).metadata.num_rows

    def read_columns(
        self,
        data: bytes,
        columns: list[str] | None = None,
        row_range: tuple[int, int] | None = None,
        url: str = "<buffer>",
    ) -> list[dict[str, Any]]:
        """Read rows as dictionaries.

        Args:
            data: Parquet file bytes.
            columns: Columns to read. Requested columns missing from the file
                are skipped; None reads every column.
            row_range: Optional [start, stop) row range. Only row groups
                overlapping the range are decoded.
            url: Source URL, used in error messages.

        Returns:
            One dictionary per row. Empty when no requested column exists.

        Raises:
            CorruptFileError: If the file cannot be decoded.
        """
        parquet_file = self._open(data, url)
        available = parquet_file.schema_arrow.names
        if columns is None:
            selected = list(available)
        else:
            present = set(available)
            selected = [column for column in dict.fromkeys(columns) if column in present]
        if not selected:
            return []

        try:
            if row_range is None:
                table = parquet_file.read(columns=selected)
            else:
                table = self._read_range(parquet_file, selected, row_range)
        except (pa.ArrowException, OSError) as e:
            raise CorruptFileError(url, bytes(data[:4]), reason=str(e)) from e

        if table is None:
            return []
        return table.to_pylist()

    def _read_range(
        self,
        parquet_file: pq.ParquetFile,
        columns: list[str],
        row_range: tuple[int, int],
    ) -> pa.Table | None:
        start, stop = max(0, row_range[0]), row_range[1]
        if stop <= start:
            return None

        metadata = parquet_file.metadata
        groups: list[int] = []
        first_row = 0
        offset = 0
        for i in range(metadata.num_row_groups):
            num_rows = metadata.row_group(i).num_rows
            if offset < stop and offset + num_rows > start:
                if not groups:
                    first_row = offset
                groups.append(i)
            offset += num_rows

        if not groups:
            return None
        logger.debug(f"Reading row groups {groups} for rows [{start}, {stop})")
        table = parquet_file.read_row_groups(groups, columns=columns)
        return table.slice(start - first_row, stop - start)

    def read_frame(self, data: bytes, url: str = "<buffer>") -> pd.DataFrame:
        """Read the whole file as a DataFrame with its stored index restored.

        Raises:
            CorruptFileError: If the file cannot be decoded.
        """
        parquet_file = self._open(data, url)
        try:
            return parquet_file.read(use_pandas_metadata=True).to_pandas()
        except (pa.ArrowException, OSError) as e:
            raise CorruptFileError(url, bytes(data[:4]), reason=str(e)) from e
