"""LeRobot v3.0 layout.

Many episodes share one data shard and one video file. Episode metadata
lives in paged parquet files that map each episode to its shard and to its
global row range [dataset_from_index, dataset_to_index).

Structure:
    dataset/
    ├── meta/
    │   ├── info.json
    │   ├── tasks.parquet                    # task strings (column or index)
    │   └── episodes/
    │       └── chunk-000/
    │           ├── file-000.parquet         # one row per episode
    │           └── file-001.parquet
    ├── data/
    │   └── chunk-000/
    │       └── file-000.parquet             # rows of many episodes
    └── videos/
        └── observation.images.top/
            └── chunk-000/
                └── file-000.mp4             # segments of many episodes
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from loupe.core.coerce import to_float, to_int, to_number
from loupe.core.exceptions import EpisodeNotFoundError, ResourceNotFoundError
from loupe.core.models import (
    DatasetIdentity,
    DatasetMetadata,
    EpisodeAddressV3,
    FormatVersion,
    TaskTable,
)
from loupe.formats.paths import V3_DATA_PATH, V3_EPISODES_PATH
from loupe.formats.registry import LayoutRegistry

if TYPE_CHECKING:
    from loupe.session import EngineContext

logger = logging.getLogger(__name__)

TASKS_PATH = "meta/tasks.parquet"

EXCLUDED_COLUMNS = frozenset({"index", "task_index", "episode_index", "frame_index", "next.done"})

ADDRESS_COLUMNS = [
    "episode_index",
    "data/chunk_index",
    "data/file_index",
    "dataset_from_index",
    "dataset_to_index",
    "length",
]
CAMERA_FIELDS = ("chunk_index", "file_index", "from_timestamp", "to_timestamp")


@LayoutRegistry.register(FormatVersion.V3_0)
class LeRobotV3Layout:
    """Shared-shard layout.

    Usage:
        layout = LeRobotV3Layout(ctx)
        address = await layout.locate(identity, metadata, 42)
        rows = await layout.load_rows(identity, metadata, address)
    """

    def __init__(self, ctx: EngineContext, version: FormatVersion = FormatVersion.V3_0):
        self._ctx = ctx
        self._version = version

    @property
    def version(self) -> FormatVersion:
        return self._version

    @property
    def excluded_columns(self) -> frozenset[str]:
        return EXCLUDED_COLUMNS

    def _episodes_url(self, identity: DatasetIdentity, chunk_index: int, file_index: int) -> str:
        path = self._ctx.formatter.format(
            V3_EPISODES_PATH, {"chunk_index": chunk_index, "file_index": file_index}
        )
        return self._ctx.url(identity, self._version, path)

    async def _iter_episode_files(self, identity: DatasetIdentity):
        """Yield (url, bytes) of every episodes metadata file, in order.

        A missing file moves to the next chunk; a missing first file of a
        chunk ends the walk.
        """
        chunk_index, file_index = 0, 0
        while True:
            url = self._episodes_url(identity, chunk_index, file_index)
            try:
                data = await self._ctx.accessor.fetch_bytes(url)
            except ResourceNotFoundError:
                if file_index == 0:
                    return
                chunk_index, file_index = chunk_index + 1, 0
                continue
            yield url, data
            file_index += 1

    async def locate(
        self,
        identity: DatasetIdentity,
        metadata: DatasetMetadata,
        episode_index: int,
    ) -> EpisodeAddressV3:
        """Search episodes metadata for one episode.

        Only the episode_index column is read while searching; the matching
        row is then read on its own.

        Raises:
            EpisodeNotFoundError: If no metadata file lists the episode.
        """
        accessor = self._ctx.accessor
        columns = ADDRESS_COLUMNS + [
            f"videos/{key}/{name}" for key in metadata.video_keys for name in CAMERA_FIELDS
        ]
        last_url = None

        async for url, data in self._iter_episode_files(identity):
            last_url = url
            indices = accessor.read_columns(data, ["episode_index"], url=url)
            position = next(
                (
                    i
                    for i, row in enumerate(indices)
                    if to_int(row.get("episode_index")) == episode_index
                ),
                None,
            )
            if position is None:
                continue

            rows = accessor.read_columns(data, columns, row_range=(position, position + 1), url=url)
            if rows:
                logger.debug(f"Episode {episode_index} found at row {position} of {url}")
                return self.parse_address(episode_index, rows[0], metadata)

        raise EpisodeNotFoundError(episode_index, searched=last_url)

    def parse_address(
        self,
        episode_index: int,
        row: dict[str, Any],
        metadata: DatasetMetadata,
    ) -> EpisodeAddressV3:
        """Build an address from one episodes metadata row."""
        from_index = to_int(row.get("dataset_from_index"), 0)
        to_index = to_int(row.get("dataset_to_index"), from_index)
        length = to_int(row.get("length"))
        if length is None:
            length = max(0, to_index - from_index)

        extras = {
            key: to_number(value)
            for key, value in row.items()
            if key.startswith("videos/") and value is not None
        }

        video_fields: dict[str, Any] = {}
        for key in metadata.video_keys:
            if extras.get(f"videos/{key}/chunk_index") is None:
                continue
            video_fields = {
                "video_chunk_index": to_int(extras.get(f"videos/{key}/chunk_index")),
                "video_file_index": to_int(extras.get(f"videos/{key}/file_index")),
                "video_from_timestamp": to_float(extras.get(f"videos/{key}/from_timestamp")),
                "video_to_timestamp": to_float(extras.get(f"videos/{key}/to_timestamp")),
            }
            break

        return EpisodeAddressV3(
            episode_index=episode_index,
            data_chunk_index=to_int(row.get("data/chunk_index"), 0),
            data_file_index=to_int(row.get("data/file_index"), 0),
            dataset_from_index=from_index,
            dataset_to_index=to_index,
            length=length,
            extras=extras,
            **video_fields,
        )

    def data_path(self, metadata: DatasetMetadata, address: EpisodeAddressV3) -> str:
        """Render the path of the shard holding the episode's rows."""
        return self._ctx.formatter.format(
            metadata.data_path or V3_DATA_PATH,
            {
                "chunk_index": address.data_chunk_index,
                "file_index": address.data_file_index,
                "data_chunk_index": address.data_chunk_index,
                "data_file_index": address.data_file_index,
                "episode_index": address.episode_index,
            },
        )

    async def load_rows(
        self,
        identity: DatasetIdentity,
        metadata: DatasetMetadata,
        address: EpisodeAddressV3,
        columns: list[str] | None = None,
    ) -> list[dict[str, Any]]:
        """Read the episode's rows from its shard.

        The global range is made shard-relative using the shard's first
        "index" value. Shards without an "index" column are read in full and
        filtered by episode_index.
        """
        accessor = self._ctx.accessor
        url = self._ctx.url(identity, self._version, self.data_path(metadata, address))
        data = await accessor.fetch_bytes(url)

        preview = accessor.read_columns(data, ["index"], row_range=(0, 1), url=url)
        shard_start = to_int(preview[0].get("index")) if preview else None

        if shard_start is None:
            logger.debug(f"No index column in {url}; filtering by episode_index")
            wanted = None if columns is None else list(columns) + ["episode_index"]
            rows = accessor.read_columns(data, wanted, url=url)
            return [
                row for row in rows if to_int(row.get("episode_index")) == address.episode_index
            ]

        local_from = max(0, address.dataset_from_index - shard_start)
        local_to = max(local_from, address.dataset_to_index - shard_start)
        if local_to <= local_from:
            local_to = local_from + 1
        return accessor.read_columns(data, columns, row_range=(local_from, local_to), url=url)

    async def load_tasks(self, identity: DatasetIdentity) -> TaskTable:
        """Load meta/tasks.parquet, cached per dataset.

        Raises:
            ResourceNotFoundError: If the dataset has no tasks file.
        """
        return await self._ctx.cache.tasks.get_or_create(
            identity.repo_id, lambda: self._read_tasks(identity)
        )

    async def _read_tasks(self, identity: DatasetIdentity) -> TaskTable:
        url = self._ctx.url(identity, self._version, TASKS_PATH)
        data = await self._ctx.accessor.fetch_bytes(url)
        frame = self._ctx.accessor.read_frame(data, url=url)

        if "task" in frame.columns:
            tasks = frame["task"].tolist()
        else:
            # Task strings are stored as the DataFrame index
            tasks = [str(label) for label in frame.index]

        if "task_index" in frame.columns:
            indices = frame["task_index"].tolist()
        else:
            indices = list(range(len(tasks)))

        return TaskTable.from_records(
            [{"task_index": i, "task": task} for i, task in zip(indices, tasks)]
        )

    async def episode_lengths(
        self,
        identity: DatasetIdentity,
        metadata: DatasetMetadata,
    ) -> dict[int, int]:
        """Read {episode_index: length} from every episodes metadata file."""
        lengths: dict[int, int] = {}
        columns = ["episode_index", "length", "dataset_from_index", "dataset_to_index"]
        async for url, data in self._iter_episode_files(identity):
            for row in self._ctx.accessor.read_columns(data, columns, url=url):
                index = to_int(row.get("episode_index"))
                if index is None:
                    continue
                length = to_int(row.get("length"))
                if length is None:
                    from_index = to_int(row.get("dataset_from_index"), 0)
                    length = max(0, to_int(row.get("dataset_to_index"), from_index) - from_index)
                lengths[index] = length
        return lengths
