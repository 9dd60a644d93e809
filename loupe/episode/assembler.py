"""Episode assembly.

Orchestrates version resolution, episode location, concurrent loading of
rows, tasks and videos, normalization, down-sampling and chart grouping into
one self-describing EpisodeData.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from loupe.config.models import ViewerConfig
from loupe.core.coerce import to_float, to_int
from loupe.core.exceptions import (
    LoupeError,
    OutOfRangeError,
    ResourceNotFoundError,
    warn_partial,
)
from loupe.core.models import (
    AdjacentEpisodeVideos,
    ChartDataGroup,
    ChartSeries,
    DatasetDisplayInfo,
    DatasetIdentity,
    DatasetMetadata,
    EpisodeAddressV3,
    EpisodeData,
    EpisodeResult,
    FormatVersion,
    TaskTable,
)
from loupe.core.protocols import Transport
from loupe.episode.charts import SERIES_NAME_DELIMITER, ChartGrouper, flatten
from loupe.episode.normalizer import SchemaNormalizer, evenly_sample
from loupe.episode.video import VideoAligner
from loupe.formats.resolver import VersionResolver
from loupe.hub.url import coerce_identity
from loupe.session import EngineContext, SessionCache

logger = logging.getLogger(__name__)

PROGRESS_FILES = ("sarm_progress.parquet", "srm_progress.parquet")
PREFERRED_PROGRESS_COLUMNS = ("progress_sparse", "progress_dense", "progress")


def _pick_progress_column(rows: list[dict[str, Any]]) -> str | None:
    if not rows:
        return None
    names = list(rows[0].keys())
    preferred = [column for column in PREFERRED_PROGRESS_COLUMNS if column in names]
    others = sorted(c for c in names if c.startswith("progress_") and c not in preferred)
    for column in preferred + others:
        if any(to_float(row.get(column)) is not None for row in rows):
            return column
    return None


def _progress_series_key(column: str) -> str:
    if column == "progress_sparse":
        return f"progress{SERIES_NAME_DELIMITER}sparse"
    if column == "progress_dense":
        return f"progress{SERIES_NAME_DELIMITER}dense"
    return "progress"


class EpisodeAssembler:
    """Assembles EpisodeData for any supported format version.

    Usage:
        assembler = EpisodeAssembler(config=ViewerConfig.from_env())
        data = await assembler.assemble("lerobot/pusht", 0)

        # With an injected transport and a shared cache
        assembler = EpisodeAssembler(transport=my_transport, cache=SessionCache())
    """

    def __init__(
        self,
        transport: Transport | None = None,
        config: ViewerConfig | None = None,
        cache: SessionCache | None = None,
    ):
        """Initialize the assembler.

        Args:
            transport: Byte transport. Defaults to HubTransport with the
                configured token and timeout.
            config: Viewer configuration.
            cache: Session cache; a fresh one is created when omitted.
        """
        self.config = config or ViewerConfig()
        if transport is None:
            from loupe.hub.transport import HubTransport

            transport = HubTransport(token=self.config.token, timeout=self.config.timeout)

        self.ctx = EngineContext(transport, self.config, cache)
        self.resolver = VersionResolver(self.ctx)
        self.videos = VideoAligner(self.ctx)
        self.grouper = ChartGrouper(self.config.max_series_per_group)

    @property
    def cache(self) -> SessionCache:
        return self.ctx.cache

    async def dataset(
        self, source: str | DatasetIdentity
    ) -> tuple[DatasetIdentity, FormatVersion, DatasetMetadata]:
        """Resolve a dataset reference to identity, version and metadata."""
        identity = coerce_identity(source)
        version, metadata = await self.resolver.resolve_with_metadata(identity)
        return identity, version, metadata

    async def dataset_info(self, source: str | DatasetIdentity) -> DatasetDisplayInfo:
        identity, version, metadata = await self.dataset(source)
        return DatasetDisplayInfo.from_metadata(identity, version, metadata)

    async def assemble(self, source: str | DatasetIdentity, episode_index: int) -> EpisodeData:
        """Assemble one episode.

        Args:
            source: Dataset identity or reference ("org/name", hf:// URL).
            episode_index: Zero-based episode index.

        Returns:
            The assembled episode.

        Raises:
            UnsupportedDatasetError: If no supported version resolves.
            OutOfRangeError: If episode_index is outside [0, total_episodes).
            EpisodeNotFoundError: If v3.0 metadata has no row for the episode.
            FetchError: If the episode's data file cannot be fetched.
            CorruptFileError: If the data file is not valid parquet.
        """
        identity, version, metadata = await self.dataset(source)
        if not 0 <= episode_index < metadata.total_episodes:
            raise OutOfRangeError(episode_index, metadata.total_episodes)

        layout = self.ctx.layout(version)
        address = await layout.locate(identity, metadata, episode_index)

        warnings: list[str] = []
        normalizer = SchemaNormalizer(
            version, metadata, excluded_columns=layout.excluded_columns, warnings=warnings
        )
        columns = normalizer.requested_columns(self.config.max_instruction_fields)

        raw_rows, tasks, videos = await asyncio.gather(
            layout.load_rows(identity, metadata, address, columns),
            layout.load_tasks(identity),
            self.videos.align(identity, episode_index, version, metadata, address, warnings),
            return_exceptions=True,
        )
        if isinstance(raw_rows, BaseException):
            raise raw_rows
        if isinstance(tasks, LoupeError):
            warn_partial(f"Task table unavailable: {tasks}", warnings)
            tasks = TaskTable()
        elif isinstance(tasks, BaseException):
            raise tasks
        if isinstance(videos, LoupeError):
            warn_partial(f"Videos unavailable: {videos}", warnings)
            videos = []
        elif isinstance(videos, BaseException):
            raise videos

        normalizer.tasks = tasks
        rows = normalizer.normalize_rows(raw_rows)
        task = normalizer.episode_task(rows, self.config.scan_all_rows_for_instructions)

        sampled = evenly_sample(rows, self.config.max_episode_points)
        timestamps = normalizer.timestamps(sampled)
        groups = self.grouper.group(sampled, normalizer.chart_features, timestamps)
        flat = flatten(groups, timestamps)

        length = address.length if isinstance(address, EpisodeAddressV3) else len(raw_rows)
        duration = self._duration(length, metadata, timestamps)

        if self.config.load_progress:
            progress = await self._progress_group(identity, version, episode_index, duration)
            if progress is not None:
                groups.append(progress)

        logger.info(
            f"Assembled {identity.repo_id} episode {episode_index}: "
            f"{len(rows)} rows, {len(groups)} groups, {len(videos)} videos"
        )
        return EpisodeData(
            dataset_info=DatasetDisplayInfo.from_metadata(identity, version, metadata),
            episode_id=episode_index,
            videos_info=videos,
            chart_data_groups=groups,
            flat_chart_data=flat,
            episodes=self.config.navigable_episodes(metadata.total_episodes),
            ignored_columns=normalizer.ignored_columns,
            duration=duration,
            task=task,
            warnings=warnings,
        )

    def _duration(
        self,
        length: int,
        metadata: DatasetMetadata,
        timestamps: list[float | None],
    ) -> float:
        if metadata.fps > 0:
            return length / metadata.fps
        known = [t for t in timestamps if t is not None]
        return max(known) if known else 0.0

    async def assemble_safe(self, source: str | DatasetIdentity, episode_index: int) -> EpisodeResult:
        """Assemble one episode, reporting engine errors instead of raising."""
        try:
            return EpisodeResult(data=await self.assemble(source, episode_index))
        except LoupeError as e:
            logger.warning(f"Failed to assemble episode {episode_index}: {e}")
            return EpisodeResult(error=str(e))

    async def adjacent_videos(
        self,
        source: str | DatasetIdentity,
        episode_index: int,
        radius: int | None = None,
    ) -> list[AdjacentEpisodeVideos]:
        """Video descriptors of neighbouring episodes, for preloading.

        Neighbours are taken from the navigable episode list, up to radius
        on each side. Episodes that fail to resolve are skipped.
        """
        radius = self.config.adjacent_radius if radius is None else radius
        identity, version, metadata = await self.dataset(source)
        episodes = self.config.navigable_episodes(metadata.total_episodes)
        if episode_index in episodes:
            position = episodes.index(episode_index)
            neighbours = (
                episodes[max(0, position - radius) : position]
                + episodes[position + 1 : position + 1 + radius]
            )
        else:
            neighbours = [
                i for i in episodes if i != episode_index and abs(i - episode_index) <= radius
            ]

        async def describe(index: int) -> AdjacentEpisodeVideos:
            videos = await self.videos.align(identity, index, version, metadata, warnings=[])
            return AdjacentEpisodeVideos(episode_id=index, videos_info=videos)

        results = await asyncio.gather(*(describe(i) for i in neighbours), return_exceptions=True)
        adjacent = []
        for index, result in zip(neighbours, results):
            if isinstance(result, AdjacentEpisodeVideos):
                adjacent.append(result)
            elif isinstance(result, LoupeError):
                logger.debug(f"Skipping adjacent episode {index}: {result}")
            else:
                raise result
        return adjacent

    async def _progress_group(
        self,
        identity: DatasetIdentity,
        version: FormatVersion,
        episode_index: int,
        duration: float,
    ) -> ChartDataGroup | None:
        """Load reward-model progress for the episode, if the dataset has any."""
        accessor = self.ctx.accessor
        for path in PROGRESS_FILES:
            url = self.ctx.url(identity, version, path)
            try:
                data = await accessor.fetch_bytes(url)
                rows = accessor.read_columns(data, url=url)
            except ResourceNotFoundError:
                continue
            except LoupeError as e:
                logger.debug(f"Ignoring progress file {url}: {e}")
                continue

            if any(to_int(row.get("episode_index")) is not None for row in rows):
                rows = [row for row in rows if to_int(row.get("episode_index")) == episode_index]
            column = _pick_progress_column(rows)
            if column is None:
                continue

            points = []
            for position, row in enumerate(rows):
                value = to_float(row.get(column))
                if value is None:
                    continue
                order = to_float(row.get("index"))
                if order is None:
                    order = to_float(row.get("frame_index"), float(position))
                points.append((order, value))
            if not points:
                continue

            points.sort(key=lambda point: point[0])
            points = evenly_sample(points, self.config.max_episode_points)
            denominator = max(len(points) - 1, 1)
            span = max(duration, 0.0)
            timestamps = [0.0 if len(points) == 1 else i / denominator * span for i in range(len(points))]
            return ChartDataGroup(
                name="progress",
                timestamps=timestamps,
                series=[ChartSeries(key=_progress_series_key(column), values=[v for _, v in points])],
            )
        return None
