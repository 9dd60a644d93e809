"""Video alignment.

Produces one VideoInfo per camera. v2.x episodes own their video files, so
each candidate is probed for existence. v3.0 episodes are segments of shared
files, bounded by per-camera (or episode-level) timestamps.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from loupe.core.coerce import to_float, to_int
from loupe.core.exceptions import warn_partial
from loupe.core.models import (
    DatasetIdentity,
    DatasetMetadata,
    EpisodeAddressV2,
    EpisodeAddressV3,
    FormatVersion,
    VideoInfo,
)
from loupe.formats.paths import V2_VIDEO_PATH, V3_VIDEO_PATH

if TYPE_CHECKING:
    from loupe.session import EngineContext

logger = logging.getLogger(__name__)


class VideoAligner:
    """Builds video descriptors for an episode.

    Usage:
        aligner = VideoAligner(ctx)
        videos = await aligner.align(identity, 3, version, metadata, address)
    """

    def __init__(self, ctx: EngineContext):
        self._ctx = ctx

    async def align(
        self,
        identity: DatasetIdentity,
        episode_index: int,
        version: FormatVersion,
        metadata: DatasetMetadata,
        address: EpisodeAddressV2 | EpisodeAddressV3 | None = None,
        warnings: list[str] | None = None,
    ) -> list[VideoInfo]:
        """Describe the episode's videos.

        Args:
            identity: Dataset identity.
            episode_index: Episode to describe.
            version: Resolved format version.
            metadata: Dataset metadata.
            address: Episode address, located on demand when omitted.
            warnings: Optional sink for partial-data messages.

        Returns:
            One VideoInfo per available camera. Image-only datasets
            (no video_path) have none.
        """
        if not metadata.video_path or not metadata.video_keys:
            return []

        if address is None:
            address = await self._ctx.layout(version).locate(identity, metadata, episode_index)

        if isinstance(address, EpisodeAddressV3):
            return self._segments(identity, version, metadata, address, warnings)
        return await self._probe_files(identity, version, metadata, address, warnings)

    async def _probe_files(
        self,
        identity: DatasetIdentity,
        version: FormatVersion,
        metadata: DatasetMetadata,
        address: EpisodeAddressV2,
        warnings: list[str] | None,
    ) -> list[VideoInfo]:
        candidates = []
        for key in metadata.video_keys:
            path = self._ctx.formatter.format(
                metadata.video_path or V2_VIDEO_PATH,
                {
                    "video_key": key,
                    "episode_chunk": address.episode_chunk,
                    "episode_index": address.episode_index,
                },
            )
            candidates.append((key, self._ctx.url(identity, version, path)))

        results = await asyncio.gather(
            *(self._ctx.exists(url) for _, url in candidates),
            return_exceptions=True,
        )

        videos = []
        for (key, url), result in zip(candidates, results):
            if result is True:
                videos.append(VideoInfo(filename=key, url=url))
            elif isinstance(result, Exception):
                warn_partial(f"Video probe for '{key}' failed: {result}", warnings)
            else:
                warn_partial(f"Video '{key}' not found for episode {address.episode_index}", warnings)
        return videos

    def _segments(
        self,
        identity: DatasetIdentity,
        version: FormatVersion,
        metadata: DatasetMetadata,
        address: EpisodeAddressV3,
        warnings: list[str] | None,
    ) -> list[VideoInfo]:
        videos = []
        for key in metadata.video_keys:
            chunk_index = to_int(address.camera_field(key, "chunk_index"), address.video_chunk_index)
            file_index = to_int(address.camera_field(key, "file_index"), address.video_file_index)
            if chunk_index is None or file_index is None:
                warn_partial(
                    f"No video location for '{key}' in episode {address.episode_index}", warnings
                )
                continue

            start = to_float(address.camera_field(key, "from_timestamp"))
            if start is None:
                start = address.video_from_timestamp if address.video_from_timestamp is not None else 0.0
            end = to_float(address.camera_field(key, "to_timestamp"))
            if end is None:
                end = address.video_to_timestamp
            if end is None:
                duration = address.length / metadata.fps if metadata.fps > 0 else 0.0
                end = start + duration

            path = self._ctx.formatter.format(
                metadata.video_path or V3_VIDEO_PATH,
                {
                    "video_key": key,
                    "chunk_index": chunk_index,
                    "file_index": file_index,
                    "video_chunk_index": chunk_index,
                    "video_file_index": file_index,
                    "episode_index": address.episode_index,
                },
            )
            videos.append(
                VideoInfo(
                    filename=key,
                    url=self._ctx.url(identity, version, path),
                    is_segmented=True,
                    segment_start=start,
                    segment_end=end,
                    segment_duration=end - start,
                )
            )
        return videos
