"""Dataset-level episode statistics."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import numpy as np

from loupe.core.models import ChartDataGroup, DatasetIdentity

if TYPE_CHECKING:
    from loupe.episode.assembler import EpisodeAssembler

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EpisodeLength:
    """Length of one episode."""

    episode_index: int
    frames: int
    seconds: float


@dataclass(frozen=True)
class HistogramBin:
    label: str
    count: int


@dataclass
class EpisodeLengthStats:
    """Summary of episode lengths across a dataset.

    Lengths are in seconds, rounded to 2 decimals.
    """

    shortest: list[EpisodeLength]
    longest: list[EpisodeLength]
    all_lengths: list[EpisodeLength]
    mean: float
    median: float
    std: float
    histogram: list[HistogramBin] = field(default_factory=list)

    @classmethod
    def from_lengths(cls, lengths: dict[int, int], fps: float) -> EpisodeLengthStats | None:
        """Compute statistics from {episode_index: frames}.

        Returns None when there are no episodes.
        """
        if not lengths:
            return None

        episodes = [
            EpisodeLength(
                episode_index=index,
                frames=frames,
                seconds=round(frames / fps, 2) if fps > 0 else float(frames),
            )
            for index, frames in sorted(lengths.items())
        ]
        by_length = sorted(episodes, key=lambda e: e.seconds)
        seconds = np.array([e.seconds for e in episodes], dtype=np.float64)

        return cls(
            shortest=by_length[:5],
            longest=list(reversed(by_length[-5:])),
            all_lengths=episodes,
            mean=round(float(np.mean(seconds)), 2),
            median=round(float(np.median(seconds)), 2),
            std=round(float(np.std(seconds)), 2),
            histogram=_histogram(seconds),
        )


def _histogram(seconds: np.ndarray) -> list[HistogramBin]:
    low, high = float(seconds.min()), float(seconds.max())
    if low == high:
        return [HistogramBin(label=f"{low:.1f}s", count=int(seconds.size))]

    # Clip outliers to the 1st-99th percentile range
    p1, p99 = np.percentile(seconds, [1, 99])
    if p99 <= p1:
        p1, p99 = low, high
    bins = max(10, min(50, math.ceil(math.log2(seconds.size) + 1)))
    counts, edges = np.histogram(np.clip(seconds, p1, p99), bins=bins, range=(p1, p99))
    return [
        HistogramBin(label=f"{edges[i]:.1f}-{edges[i + 1]:.1f}s", count=int(count))
        for i, count in enumerate(counts)
    ]


async def load_episode_length_stats(
    assembler: EpisodeAssembler,
    source: str | DatasetIdentity,
) -> EpisodeLengthStats | None:
    """Load every episode's length and summarize them.

    Uses v3.0 episodes metadata shards or v2.x meta/episodes.jsonl.

    Returns:
        Statistics, or None when the dataset lists no episode lengths.
    """
    identity, version, metadata = await assembler.dataset(source)
    lengths = await assembler.ctx.layout(version).episode_lengths(identity, metadata)
    logger.debug(f"Loaded {len(lengths)} episode lengths for {identity.repo_id}")
    return EpisodeLengthStats.from_lengths(lengths, metadata.fps)


def column_min_max(groups: list[ChartDataGroup]) -> dict[str, tuple[float, float]]:
    """Per-series minimum and maximum, rounded to 3 decimals.

    Series without finite values are left out.
    """
    result = {}
    for group in groups:
        for series in group.series:
            finite = [v for v in series.values if v is not None and math.isfinite(v)]
            if finite:
                result[series.key] = (round(min(finite), 3), round(max(finite), 3))
    return result
