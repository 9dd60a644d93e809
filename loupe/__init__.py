"""Loupe - Episode viewer engine for robotics datasets.

Loupe resolves the on-disk format version of a LeRobot dataset (v2.0, v2.1,
v3.0), locates an episode's shards, reads only the byte ranges it needs and
assembles a normalized, chart-ready time series with aligned video segments.

Key Characteristics:
- Read-only, I/O-bound, asyncio throughout
- Version differences are absorbed by per-version layout strategies
- Explicit session cache: each file is fetched at most once

Example:
    >>> import loupe
    >>> data = loupe.load_episode("lerobot/pusht", 0)
    >>> print(data.duration)
    >>> print([group.name for group in data.chart_data_groups])
"""

import asyncio

from loupe.config.models import ViewerConfig
from loupe.core.exceptions import (
    CorruptFileError,
    EpisodeNotFoundError,
    FetchError,
    LoupeError,
    MalformedTemplateError,
    MetadataError,
    MissingDependencyError,
    OutOfRangeError,
    PartialDataWarning,
    ResourceNotFoundError,
    UnsupportedDatasetError,
    UnsupportedVersionError,
)
from loupe.core.models import (
    ChartDataGroup,
    ChartSeries,
    DatasetIdentity,
    EpisodeData,
    EpisodeResult,
    FormatVersion,
    VideoInfo,
)
from loupe.episode.assembler import EpisodeAssembler
from loupe.formats.registry import LayoutRegistry
from loupe.session import SessionCache

__version__ = "0.1.0"

__all__ = [
    # Version
    "__version__",
    # Core models
    "ChartDataGroup",
    "ChartSeries",
    "DatasetIdentity",
    "EpisodeData",
    "EpisodeResult",
    "FormatVersion",
    "VideoInfo",
    # Exceptions
    "CorruptFileError",
    "EpisodeNotFoundError",
    "FetchError",
    "LoupeError",
    "MalformedTemplateError",
    "MetadataError",
    "MissingDependencyError",
    "OutOfRangeError",
    "PartialDataWarning",
    "ResourceNotFoundError",
    "UnsupportedDatasetError",
    "UnsupportedVersionError",
    # Engine
    "EpisodeAssembler",
    "LayoutRegistry",
    "SessionCache",
    "ViewerConfig",
    # Module-level functions
    "load_episode",
]


def load_episode(
    repo_id: str,
    episode_index: int,
    **options,
) -> EpisodeData:
    """Assemble one episode synchronously.

    Args:
        repo_id: Dataset reference ("org/name", hf:// or https URL).
        episode_index: Zero-based episode index.
        **options: ViewerConfig fields.

    Returns:
        EpisodeData with charts, videos and dataset summary.

    Example:
        >>> data = loupe.load_episode("lerobot/pusht", 0)
        >>> data = loupe.load_episode("lerobot/pusht", 3, max_episode_points=1000)
    """
    assembler = EpisodeAssembler(config=ViewerConfig(**options))
    return asyncio.run(assembler.assemble(repo_id, episode_index))
