"""Session state shared by every engine component.

The SessionCache is owned by the caller and passed in; nothing in Loupe keeps
module-level state. Cache inserts are idempotent, and concurrent requests for
the same key share one in-flight task.
"""

from __future__ import annotations

import asyncio
import functools
import json
import logging
from collections.abc import Awaitable, Callable, Hashable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from loupe.config.models import ViewerConfig
from loupe.core.exceptions import (
    MetadataError,
    ResourceNotFoundError,
    UnsupportedDatasetError,
)
from loupe.core.models import DatasetIdentity, FormatVersion
from loupe.core.protocols import EpisodeLayout, Transport
from loupe.formats.parquet import ParquetAccessor
from loupe.formats.paths import PathFormatter
from loupe.formats.registry import LayoutRegistry
from loupe.hub.url import build_versioned_url

logger = logging.getLogger(__name__)

V = TypeVar("V")


class AsyncCache(Generic[V]):
    """Keyed cache of awaitable results.

    A key is computed at most once: the first caller starts a task, later
    callers await the same task through asyncio.shield, so cancelling one
    caller never cancels the shared computation. Failures are not cached
    unless their type is listed in ``remember``.
    """

    def __init__(self, name: str, remember: tuple[type[BaseException], ...] = ()):
        self.name = name
        self._remember = remember
        self._values: dict[Hashable, V] = {}
        self._failures: dict[Hashable, BaseException] = {}
        self._pending: dict[Hashable, asyncio.Future[V]] = {}

    def __contains__(self, key: Hashable) -> bool:
        return key in self._values or key in self._failures

    def __len__(self) -> int:
        return len(self._values) + len(self._failures)

    def peek(self, key: Hashable) -> V | None:
        """Return a cached value without computing it."""
        return self._values.get(key)

    def put(self, key: Hashable, value: V) -> V:
        """Insert a value unless one is already present; return the stored one."""
        return self._values.setdefault(key, value)

    async def get_or_create(self, key: Hashable, factory: Callable[[], Awaitable[V]]) -> V:
        """Return the cached value for key, computing it once if needed.

        Args:
            key: Cache key.
            factory: Zero-argument callable returning an awaitable.

        Raises:
            Whatever the factory raised; remembered failures are re-raised
            without calling the factory again.
        """
        if key in self._values:
            logger.debug(f"{self.name} cache hit: {key}")
            return self._values[key]
        if key in self._failures:
            logger.debug(f"{self.name} cache hit (failure): {key}")
            raise self._failures[key].with_traceback(None)

        task = self._pending.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._pending[key] = task
            task.add_done_callback(functools.partial(self._settle, key))
        return await asyncio.shield(task)

    def _settle(self, key: Hashable, task: asyncio.Future[V]) -> None:
        self._pending.pop(key, None)
        if task.cancelled():
            return
        error = task.exception()
        if error is None:
            self._values.setdefault(key, task.result())
        elif self._remember and isinstance(error, self._remember):
            self._failures.setdefault(key, error)

    def clear(self) -> None:
        self._values.clear()
        self._failures.clear()


@dataclass
class SessionCache:
    """Per-session caches.

    Attributes:
        versions: repo_id -> (FormatVersion, DatasetMetadata). Unsupported
            datasets are remembered.
        buffers: URL -> fetched bytes. Missing files are remembered.
        existence: URL -> bool from existence probes.
        tasks: repo_id -> TaskTable.
    """

    versions: AsyncCache = field(
        default_factory=lambda: AsyncCache("versions", remember=(UnsupportedDatasetError,))
    )
    buffers: AsyncCache = field(
        default_factory=lambda: AsyncCache("buffers", remember=(ResourceNotFoundError,))
    )
    existence: AsyncCache = field(default_factory=lambda: AsyncCache("existence"))
    tasks: AsyncCache = field(default_factory=lambda: AsyncCache("tasks"))

    def clear(self) -> None:
        for cache in (self.versions, self.buffers, self.existence, self.tasks):
            cache.clear()


class EngineContext:
    """Bundle of collaborators handed to resolvers, layouts and aligners.

    Usage:
        ctx = EngineContext(HubTransport(), ViewerConfig(), SessionCache())
        layout = ctx.layout(FormatVersion.V3_0)
    """

    def __init__(
        self,
        transport: Transport,
        config: ViewerConfig | None = None,
        cache: SessionCache | None = None,
    ):
        self.transport = transport
        self.config = config or ViewerConfig()
        self.cache = cache if cache is not None else SessionCache()
        self.accessor = ParquetAccessor(transport, self.cache)
        self.formatter = PathFormatter()
        self._layouts: dict[FormatVersion, EpisodeLayout] = {}

    def url(self, identity: DatasetIdentity, version: FormatVersion, path: str) -> str:
        """Build a versioned URL against the configured dataset host."""
        return build_versioned_url(identity, version, path, self.config.dataset_url)

    def layout(self, version: FormatVersion) -> EpisodeLayout:
        """Return the layout strategy for a version (created once per context)."""
        if version not in self._layouts:
            self._layouts[version] = LayoutRegistry.create(version, self)
        return self._layouts[version]

    async def exists(self, url: str) -> bool:
        return await self.accessor.exists(url)

    async def fetch_json(self, url: str) -> Any:
        """Fetch and decode a JSON document.

        Raises:
            ResourceNotFoundError: If the document does not exist.
            MetadataError: If it is not valid JSON.
        """
        data = await self.accessor.fetch_raw(url)
        try:
            return json.loads(data)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise MetadataError(url, f"invalid JSON: {e}") from e

    async def fetch_jsonl(self, url: str) -> list[dict[str, Any]]:
        """Fetch a JSON-lines document, skipping blank and malformed lines."""
        data = await self.accessor.fetch_raw(url)
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MetadataError(url, f"invalid UTF-8: {e}") from e

        records = []
        for line_number, line in enumerate(text.splitlines(), start=1):
            if not line.strip():
                continue
            try:
                record = json.loads(line)
            except json.JSONDecodeError:
                logger.debug(f"Skipping malformed line {line_number} of {url}")
                continue
            if isinstance(record, dict):
                records.append(record)
        return records

