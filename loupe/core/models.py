"""Core domain models for Loupe.

This module defines the version-independent representations the episode
engine produces: dataset identity and metadata, episode addressing,
canonical rows, chart groups, video descriptors and the EpisodeData value
handed to the presentation layer.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

from loupe.core.coerce import to_float, to_int

# ============================================================
# Dataset identity and format version
# ============================================================


@dataclass(frozen=True)
class DatasetIdentity:
    """Organization + dataset name of a remote dataset repository.

    Attributes:
        organization: Owner of the repository (e.g., "lerobot").
        name: Dataset name (e.g., "pusht").
    """

    organization: str
    name: str

    def __post_init__(self) -> None:
        if not self.organization or not self.name:
            raise ValueError("Dataset identity needs both organization and name")
        if "/" in self.organization or "/" in self.name:
            raise ValueError("Organization and name cannot contain '/'")

    @property
    def repo_id(self) -> str:
        """Return "org/name"."""
        return f"{self.organization}/{self.name}"

    @classmethod
    def parse(cls, repo_id: str) -> DatasetIdentity:
        """Parse an "org/name" repository id.

        Raises:
            ValueError: If the id does not have exactly two parts.
        """
        parts = repo_id.strip().strip("/").split("/")
        if len(parts) != 2:
            raise ValueError(
                f"Invalid repo_id format: {repo_id}. Expected 'org/dataset' format."
            )
        return cls(organization=parts[0], name=parts[1])

    def __str__(self) -> str:
        return self.repo_id


class FormatVersion(Enum):
    """On-disk layout versions the engine can read."""

    V3_0 = "v3.0"
    V2_1 = "v2.1"
    V2_0 = "v2.0"

    @property
    def is_v3(self) -> bool:
        """True for the shared-shard layout."""
        return self is FormatVersion.V3_0

    @classmethod
    def parse(cls, value: str) -> FormatVersion:
        """Parse "v3.0", "3.0" or "V2.1" into a FormatVersion.

        Raises:
            ValueError: If the version is not supported.
        """
        text = str(value).strip().lower()
        if not text.startswith("v"):
            text = f"v{text}"
        for member in cls:
            if member.value == text:
                return member
        raise ValueError(f"Unknown format version: {value}")


# Probe order, most specific first
RESOLUTION_ORDER: tuple[FormatVersion, ...] = (
    FormatVersion.V3_0,
    FormatVersion.V2_1,
    FormatVersion.V2_0,
)


# ============================================================
# Features and dataset metadata
# ============================================================


class Dtype(Enum):
    """Feature data types found in info.json."""

    VIDEO = "video"
    IMAGE = "image"
    FLOAT32 = "float32"
    FLOAT64 = "float64"
    INT8 = "int8"
    INT16 = "int16"
    INT32 = "int32"
    INT64 = "int64"
    UINT8 = "uint8"
    UINT16 = "uint16"
    UINT32 = "uint32"
    UINT64 = "uint64"
    BOOL = "bool"
    STRING = "string"
    OTHER = "other"

    @classmethod
    def parse(cls, value: Any) -> Dtype:
        """Map an info.json dtype string to a Dtype, OTHER if unknown."""
        text = str(value).strip().lower()
        if text == "boolean":
            return cls.BOOL
        for member in cls:
            if member.value == text:
                return member
        return cls.OTHER

    @property
    def is_numeric(self) -> bool:
        """True for numbers and booleans (booleans plot as 0/1)."""
        return self not in (Dtype.VIDEO, Dtype.IMAGE, Dtype.STRING, Dtype.OTHER)


def flatten_axis_names(names: Any) -> tuple[str, ...] | None:
    """Descend a names spec to its first list of axis names.

    info.json stores names as a list, as {"motors": [...]}, or as null.
    """
    while isinstance(names, dict):
        if not names:
            return None
        names = next(iter(names.values()))
    if isinstance(names, (list, tuple)):
        return tuple(str(name) for name in names)
    return None


@dataclass(frozen=True)
class Feature:
    """Schema for one named column of the per-frame table.

    Attributes:
        name: Feature key (e.g., "observation.state").
        dtype: Data type.
        shape: Declared shape, excluding the frame dimension.
        names: Semantic axis names (e.g., per-motor names), if declared.
        video_info: Codec information for video features.
    """

    name: str
    dtype: Dtype
    shape: tuple[int, ...] = ()
    names: tuple[str, ...] | None = None
    video_info: dict[str, Any] | None = field(default=None, compare=False, hash=False)

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Feature name cannot be empty")

    @classmethod
    def from_dict(cls, name: str, spec: dict[str, Any]) -> Feature:
        """Build a Feature from its info.json entry."""
        shape = tuple(to_int(dim, 0) for dim in spec.get("shape") or [])
        video_info = spec.get("video_info") or spec.get("info")
        return cls(
            name=name,
            dtype=Dtype.parse(spec.get("dtype", "float32")),
            shape=shape,
            names=flatten_axis_names(spec.get("names")),
            video_info=video_info if isinstance(video_info, dict) else None,
        )

    @property
    def is_video(self) -> bool:
        return self.dtype is Dtype.VIDEO

    @property
    def is_plottable(self) -> bool:
        """Numeric features with at most one axis can be charted."""
        return self.dtype.is_numeric and len(self.shape) <= 1

    @property
    def axis_names(self) -> tuple[str, ...]:
        """Axis labels used to name chart series.

        Falls back to positional labels when no names are declared.
        """
        if self.names:
            return self.names
        width = self.shape[0] if self.shape and self.shape[0] > 0 else 1
        return tuple(str(i) for i in range(width))


@dataclass(frozen=True)
class CameraInfo:
    """Metadata about a camera stream.

    Attributes:
        name: Video feature key (e.g., "observation.images.top").
        height: Image height in pixels.
        width: Image width in pixels.
        channels: Number of color channels (default 3 for RGB).
    """

    name: str
    height: int
    width: int
    channels: int = 3

    def __post_init__(self) -> None:
        if self.height <= 0 or self.width <= 0:
            raise ValueError("Camera dimensions must be positive")
        if self.channels <= 0:
            raise ValueError("Channels must be positive")


@dataclass
class DatasetMetadata:
    """Parsed meta/info.json.

    Loaded once per dataset and treated as read-only afterwards.
    """

    codebase_version: str
    total_episodes: int
    total_frames: int
    fps: float
    features: dict[str, Feature]
    robot_type: str | None = None
    total_tasks: int = 0
    total_videos: int = 0
    total_chunks: int = 0
    chunks_size: int = 1000
    splits: dict[str, str] = field(default_factory=dict)
    data_path: str | None = None
    video_path: str | None = None
    data_files_size_in_mb: float = 0.0
    video_files_size_in_mb: float = 0.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DatasetMetadata:
        """Create metadata from the decoded info.json document."""
        features = {
            key: Feature.from_dict(key, spec)
            for key, spec in (data.get("features") or {}).items()
            if isinstance(spec, dict)
        }
        return cls(
            codebase_version=str(data.get("codebase_version", "")),
            total_episodes=to_int(data.get("total_episodes"), 0),
            total_frames=to_int(data.get("total_frames"), 0),
            fps=to_float(data.get("fps"), 0.0),
            features=features,
            robot_type=data.get("robot_type"),
            total_tasks=to_int(data.get("total_tasks"), 0),
            total_videos=to_int(data.get("total_videos"), 0),
            total_chunks=to_int(data.get("total_chunks"), 0),
            chunks_size=max(1, to_int(data.get("chunks_size"), 1000) or 1000),
            splits=dict(data.get("splits") or {}),
            data_path=data.get("data_path"),
            video_path=data.get("video_path"),
            data_files_size_in_mb=to_float(data.get("data_files_size_in_mb"), 0.0),
            video_files_size_in_mb=to_float(data.get("video_files_size_in_mb"), 0.0),
        )

    @property
    def video_keys(self) -> list[str]:
        """Keys of all video features, in declaration order."""
        return [key for key, feature in self.features.items() if feature.is_video]

    @property
    def cameras(self) -> list[CameraInfo]:
        """Camera resolutions declared by video features."""
        cameras = []
        for key, feature in self.features.items():
            if not feature.is_video or len(feature.shape) < 2:
                continue
            height, width = feature.shape[0], feature.shape[1]
            if height <= 0 or width <= 0:
                continue
            channels = feature.shape[2] if len(feature.shape) > 2 and feature.shape[2] > 0 else 3
            cameras.append(CameraInfo(name=key, height=height, width=width, channels=channels))
        return cameras


# ============================================================
# Episode addressing
# ============================================================


@dataclass(frozen=True)
class EpisodeAddressV2:
    """Addressing for one-file-per-episode layouts (v2.0, v2.1)."""

    episode_index: int
    episode_chunk: int


@dataclass(frozen=True)
class EpisodeAddressV3:
    """Addressing into shared multi-episode shards (v3.0).

    The [dataset_from_index, dataset_to_index) row range is authoritative.
    Per-camera video fields ("videos/<key>/from_timestamp", ...) are kept in
    extras because camera counts are dataset-defined.
    """

    episode_index: int
    data_chunk_index: int
    data_file_index: int
    dataset_from_index: int
    dataset_to_index: int
    length: int
    video_chunk_index: int | None = None
    video_file_index: int | None = None
    video_from_timestamp: float | None = None
    video_to_timestamp: float | None = None
    extras: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def camera_field(self, video_key: str, name: str) -> Any:
        """Return a per-camera field such as "chunk_index", or None."""
        return self.extras.get(f"videos/{video_key}/{name}")


EpisodeAddress = EpisodeAddressV2 | EpisodeAddressV3


# ============================================================
# Canonical rows and tasks
# ============================================================


@dataclass
class CanonicalRow:
    """One timestep, independent of the storage version.

    Attributes:
        timestamp: Seconds since episode start.
        episode_index: Episode the row belongs to.
        frame_index: Zero-based index within the episode.
        index: Global row index across the dataset.
        task_index: Raw task reference.
        task: Resolved task string.
        values: Plottable features, padded to their declared axis count.
        reward: Value of next.reward, if present.
        done: Value of next.done, if present.
        extras: Dataset-defined string attributes (language instructions).
    """

    timestamp: float | None = None
    episode_index: int | None = None
    frame_index: int | None = None
    index: int | None = None
    task_index: int | None = None
    task: str | None = None
    values: dict[str, list[float | None]] = field(default_factory=dict)
    reward: float | None = None
    done: bool | None = None
    extras: dict[str, Any] = field(default_factory=dict)


@dataclass
class TaskTable:
    """Task strings ordered by task_index.

    Lookups are defensive: anything that is not an in-range index yields None.
    """

    entries: list[str | None] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.entries)

    def lookup(self, task_index: Any) -> str | None:
        """Return the task for an index, or None when out of range."""
        index = to_int(task_index)
        if index is None or index < 0 or index >= len(self.entries):
            return None
        return self.entries[index]

    @classmethod
    def from_records(cls, records: list[dict[str, Any]]) -> TaskTable:
        """Build from {"task_index": i, "task": "..."} records.

        Records without a usable task_index are placed by position.
        """
        indexed: dict[int, str] = {}
        for position, record in enumerate(records):
            task = record.get("task")
            if not isinstance(task, str):
                continue
            index = to_int(record.get("task_index"), position)
            if index is None or index < 0:
                continue
            indexed[index] = task
        if not indexed:
            return cls()
        entries: list[str | None] = [None] * (max(indexed) + 1)
        for index, task in indexed.items():
            entries[index] = task
        return cls(entries=entries)


# ============================================================
# Chart and video output
# ============================================================


@dataclass
class ChartSeries:
    """One plotted line: a key and its value per frame."""

    key: str
    values: list[float | None] = field(default_factory=list)


@dataclass
class ChartDataGroup:
    """A named set of series drawn on one chart.

    Series may have unequal lengths; rows() null-pads the shorter ones.

    Attributes:
        name: Group label: the first axis suffix it holds, or a scalar feature name.
        timestamps: Time axis shared by the series.
        series: Series in display order.
        part: 1-based part number when a group was split.
        parts: Total number of parts of the split group.
    """

    name: str
    timestamps: list[float | None] = field(default_factory=list)
    series: list[ChartSeries] = field(default_factory=list)
    part: int = 1
    parts: int = 1

    @property
    def keys(self) -> list[str]:
        return [series.key for series in self.series]

    @property
    def is_split(self) -> bool:
        return self.parts > 1

    def rows(self) -> list[dict[str, float | None]]:
        """Interleave series by index into table rows.

        Row i takes series[i] when i is within the series, else None.
        """
        lengths = [len(self.timestamps)] + [len(series.values) for series in self.series]
        num_rows = max(lengths) if lengths else 0
        table = []
        for i in range(num_rows):
            row: dict[str, float | None] = {
                "timestamp": self.timestamps[i] if i < len(self.timestamps) else None
            }
            for series in self.series:
                row[series.key] = series.values[i] if i < len(series.values) else None
            table.append(row)
        return table


@dataclass(frozen=True)
class VideoInfo:
    """Playable video for one camera of one episode.

    Segmented videos are shared files (v3.0); the player must clamp playback
    to [segment_start, segment_end].
    """

    filename: str
    url: str
    is_segmented: bool = False
    segment_start: float | None = None
    segment_end: float | None = None
    segment_duration: float | None = None


@dataclass(frozen=True)
class AdjacentEpisodeVideos:
    """Video descriptors of a neighbouring episode, for preloading."""

    episode_id: int
    videos_info: list[VideoInfo]


@dataclass
class DatasetDisplayInfo:
    """Dataset summary shown next to an episode."""

    repo_id: str
    total_frames: int
    total_episodes: int
    fps: float
    robot_type: str | None = None
    codebase_version: str = ""
    total_tasks: int = 0
    dataset_size_mb: float = 0.0
    cameras: list[CameraInfo] = field(default_factory=list)

    @classmethod
    def from_metadata(
        cls,
        identity: DatasetIdentity,
        version: FormatVersion,
        metadata: DatasetMetadata,
    ) -> DatasetDisplayInfo:
        size = metadata.data_files_size_in_mb + metadata.video_files_size_in_mb
        return cls(
            repo_id=identity.repo_id,
            total_frames=metadata.total_frames,
            total_episodes=metadata.total_episodes,
            fps=metadata.fps,
            robot_type=metadata.robot_type,
            codebase_version=metadata.codebase_version or version.value,
            total_tasks=metadata.total_tasks,
            dataset_size_mb=round(size, 1),
            cameras=metadata.cameras,
        )


@dataclass
class EpisodeData:
    """Everything the presentation layer needs to render one episode.

    Fully self-describing: rendering needs no further network calls.
    """

    dataset_info: DatasetDisplayInfo
    episode_id: int
    videos_info: list[VideoInfo]
    chart_data_groups: list[ChartDataGroup]
    flat_chart_data: list[dict[str, float]]
    episodes: list[int]
    ignored_columns: list[str]
    duration: float
    task: str | None = None
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to plain Python containers for JSON serialization."""
        return asdict(self)

    def summary(self) -> str:
        """Generate a human-readable summary."""
        lines = [
            f"Dataset: {self.dataset_info.repo_id} ({self.dataset_info.codebase_version})",
            f"Episode: {self.episode_id} of {self.dataset_info.total_episodes}",
            f"Duration: {self.duration:.2f}s",
            f"Videos: {len(self.videos_info)}",
            f"Chart groups: {len(self.chart_data_groups)}",
        ]
        if self.task:
            lines.append(f"Task: {self.task}")
        if self.warnings:
            lines.append(f"Warnings: {len(self.warnings)}")
        return "\n".join(lines)


@dataclass
class EpisodeResult:
    """Outcome of assembling an episode without raising.

    Exactly one of data and error is set.
    """

    data: EpisodeData | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.data is not None
