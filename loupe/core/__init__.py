"""Core domain models and protocols for Loupe."""

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
    RESOLUTION_ORDER,
    AdjacentEpisodeVideos,
    CameraInfo,
    CanonicalRow,
    ChartDataGroup,
    ChartSeries,
    DatasetDisplayInfo,
    DatasetIdentity,
    DatasetMetadata,
    Dtype,
    EpisodeAddressV2,
    EpisodeAddressV3,
    EpisodeData,
    EpisodeResult,
    Feature,
    FormatVersion,
    TaskTable,
    VideoInfo,
)
from loupe.core.protocols import EpisodeLayout, Transport

__all__ = [
    # Models
    "RESOLUTION_ORDER",
    "AdjacentEpisodeVideos",
    "CameraInfo",
    "CanonicalRow",
    "ChartDataGroup",
    "ChartSeries",
    "DatasetDisplayInfo",
    "DatasetIdentity",
    "DatasetMetadata",
    "Dtype",
    "EpisodeAddressV2",
    "EpisodeAddressV3",
    "EpisodeData",
    "EpisodeResult",
    "Feature",
    "FormatVersion",
    "TaskTable",
    "VideoInfo",
    # Protocols
    "EpisodeLayout",
    "Transport",
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
]
