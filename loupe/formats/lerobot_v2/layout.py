"""LeRobot v2.x layout (v2.0 and v2.1).

One parquet file per episode, grouped into chunks of ``chunks_size``
episodes; the episode address is pure arithmetic.

Structure:
    dataset/
    ├── meta/
    │   ├── info.json           # Dataset metadata, features, path templates
    │   ├── episodes.jsonl      # Per-episode metadata (index, tasks, length)
    │   └── tasks.jsonl         # {"task_index": i, "task": "..."} per line
    ├── data/
    │   └── chunk-000/
    │       ├── episode_000000.parquet
    │       └── ...
    └── videos/
        └── chunk-000/
            └── observation.images.top/
                ├── episode_000000.mp4
                └── ...
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from loupe.core.coerce import to_int
from loupe.core.models import (
    DatasetIdentity,
    DatasetMetadata,
    EpisodeAddressV2,
    FormatVersion,
    TaskTable,
)
from loupe.formats.paths import V2_DATA_PATH
from loupe.formats.registry import LayoutRegistry

if TYPE_CHECKING:
    from loupe.session import EngineContext

logger = logging.getLogger(__name__)

TASKS_PATH = "meta/tasks.jsonl"
EPISODES_PATH = "meta/episodes.jsonl"

EXCLUDED_COLUMNS = frozenset({"timestamp", "frame_index", "episode_index", "index", "task_index"})


@LayoutRegistry.register(FormatVersion.V2_0, FormatVersion.V2_1)
class LeRobotV2Layout:
    """Per-episode file layout.

    Usage:
        layout = LeRobotV2Layout(ctx, FormatVersion.V2_1)
        address = await layout.locate(identity, metadata, 42)
        rows = await layout.load_rows(identity, metadata, address)
    """

    def __init__(self, ctx: EngineContext, version: FormatVersion = FormatVersion.V2_1):
        self._ctx = ctx
        self._version = version

    @property
    def version(self) -> FormatVersion:
        return self._version

    @property
    def excluded_columns(self) -> frozenset[str]:
        return EXCLUDED_COLUMNS

    async def locate(
        self,
        identity: DatasetIdentity,
        metadata: DatasetMetadata,
        episode_index: int,
    ) -> EpisodeAddressV2:
        return EpisodeAddressV2(
            episode_index=episode_index,
            episode_chunk=episode_index // metadata.chunks_size,
        )

    def data_path(self, metadata: DatasetMetadata, address: EpisodeAddressV2) -> str:
        """Render the episode's data file path."""
        return self._ctx.formatter.format(
            metadata.data_path or V2_DATA_PATH,
            {
                "episode_chunk": address.episode_chunk,
                "episode_index": address.episode_index,
            },
        )

    async def load_rows(
        self,
        identity: DatasetIdentity,
        metadata: DatasetMetadata,
        address: EpisodeAddressV2,
        columns: list[str] | None = None,
    ) -> list[dict[str, Any]]:
        url = self._ctx.url(identity, self._version, self.data_path(metadata, address))
        data = await self._ctx.accessor.fetch_bytes(url)
        rows = self._ctx.accessor.read_columns(data, columns, url=url)
        logger.debug(f"Loaded {len(rows)} rows for episode {address.episode_index}")
        return rows

    async def load_tasks(self, identity: DatasetIdentity) -> TaskTable:
        """Load meta/tasks.jsonl, cached per dataset.

        Raises:
            ResourceNotFoundError: If the dataset has no tasks file.
        """
        return await self._ctx.cache.tasks.get_or_create(
            identity.repo_id, lambda: self._read_tasks(identity)
        )

    async def _read_tasks(self, identity: DatasetIdentity) -> TaskTable:
        url = self._ctx.url(identity, self._version, TASKS_PATH)
        records = await self._ctx.fetch_jsonl(url)
        return TaskTable.from_records(records)

    async def episode_lengths(
        self,
        identity: DatasetIdentity,
        metadata: DatasetMetadata,
    ) -> dict[int, int]:
        """Read {episode_index: length} from meta/episodes.jsonl."""
        url = self._ctx.url(identity, self._version, EPISODES_PATH)
        lengths: dict[int, int] = {}
        for record in await self._ctx.fetch_jsonl(url):
            index = to_int(record.get("episode_index"))
            length = to_int(record.get("length"))
            if index is not None and length is not None:
                lengths[index] = length
        return lengths
