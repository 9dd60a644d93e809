"""Schema normalization.

Raw rows differ across format versions (which bookkeeping columns exist,
how integers are typed, where the task string lives). The normalizer maps
each raw row onto a CanonicalRow so everything downstream is version-free.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from loupe.core.coerce import is_sequence_value, to_float, to_int
from loupe.core.exceptions import warn_partial
from loupe.core.models import (
    CanonicalRow,
    DatasetMetadata,
    Feature,
    FormatVersion,
    TaskTable,
)

logger = logging.getLogger(__name__)

INSTRUCTION_PREFIX = "language_instruction"
_INSTRUCTION_KEY = re.compile(r"language_instruction(?:_(\d+))?")

BOOKKEEPING_COLUMNS = ["timestamp", "frame_index", "episode_index", "index", "task_index", "task"]

# Never charted, whatever the layout excludes
NON_SERIES_COLUMNS = frozenset(
    {"timestamp", "frame_index", "episode_index", "index", "task_index", "next.done"}
)


def instruction_columns(max_fields: int = 8) -> list[str]:
    """Column names of the language instruction fields, in order."""
    return [INSTRUCTION_PREFIX] + [f"{INSTRUCTION_PREFIX}_{n}" for n in range(2, max_fields + 1)]


def _row_instructions(row: dict[str, Any]) -> list[str]:
    numbered = []
    for key, value in row.items():
        match = _INSTRUCTION_KEY.fullmatch(key)
        if match is None or not isinstance(value, str) or not value.strip():
            continue
        numbered.append((int(match.group(1) or 1), value))
    return [value for _, value in sorted(numbered)]


def extract_language_instructions(
    rows: list[dict[str, Any]],
    scan_all: bool = False,
) -> str | None:
    """Collect language instructions from episode rows.

    Samples the first, middle and last rows (or every row with scan_all)
    and stops at the first row carrying at least one instruction. That
    row's language_instruction, language_instruction_2, ... values are
    joined with newlines.

    Args:
        rows: Raw or canonical-extras rows.
        scan_all: Scan every row instead of three samples.

    Returns:
        Joined instructions, or None if no sampled row has any.
    """
    if not rows:
        return None

    if scan_all:
        candidates: list[int] = list(range(len(rows)))
    else:
        candidates = sorted({0, len(rows) // 2, len(rows) - 1})

    for i in candidates:
        instructions = _row_instructions(rows[i])
        if instructions:
            return "\n".join(instructions)
    return None


def evenly_sample(items: list, max_count: int) -> list:
    """Keep at most max_count items, evenly spaced, first and last included."""
    length = len(items)
    if length <= max_count:
        return list(items)
    if max_count <= 1:
        return items[:1]

    indices = {round(i * (length - 1) / (max_count - 1)) for i in range(max_count)}
    # Fill gaps left by rounding collisions
    i = 0
    while len(indices) < max_count and i < length:
        indices.add(i)
        i += 1
    return [items[i] for i in sorted(indices)]


class SchemaNormalizer:
    """Maps raw rows of one dataset onto CanonicalRow.

    Every count and index goes through the coercion boundary in
    loupe.core.coerce. A feature whose value cannot be interpreted is
    omitted from that row and reported once as partial data.

    Usage:
        normalizer = SchemaNormalizer(version, metadata, tasks, excluded)
        rows = [normalizer.normalize(raw) for raw in raw_rows]
    """

    def __init__(
        self,
        version: FormatVersion,
        metadata: DatasetMetadata,
        tasks: TaskTable | None = None,
        excluded_columns: frozenset[str] = frozenset(),
        warnings: list[str] | None = None,
    ):
        self.version = version
        self.metadata = metadata
        self.tasks = tasks or TaskTable()
        self.excluded_columns = excluded_columns
        self.warnings = warnings if warnings is not None else []
        self._reported: set[str] = set()

    @property
    def chart_features(self) -> list[Feature]:
        """Plottable features that are not bookkeeping columns.

        The same features are charted for every format version; the layout's
        own exclusions only widen the set.
        """
        skipped = NON_SERIES_COLUMNS | self.excluded_columns
        return [
            feature
            for name, feature in self.metadata.features.items()
            if feature.is_plottable and name not in skipped
        ]

    @property
    def ignored_columns(self) -> list[str]:
        """Columns the charts leave out.

        Multi-dimensional numeric features plus excluded bookkeeping columns
        that the dataset declares.
        """
        ignored = []
        for name, feature in self.metadata.features.items():
            if feature.dtype.is_numeric and len(feature.shape) > 1:
                ignored.append(name)
            elif name in self.excluded_columns:
                ignored.append(name)
        return ignored

    def requested_columns(self, max_instruction_fields: int = 8) -> list[str]:
        """Columns worth reading from a data file."""
        columns = list(BOOKKEEPING_COLUMNS)
        columns += [feature.name for feature in self.chart_features]
        columns += ["next.reward", "next.done"]
        columns += instruction_columns(max_instruction_fields)
        return list(dict.fromkeys(columns))

    def _report(self, name: str, message: str) -> None:
        if name in self._reported:
            return
        self._reported.add(name)
        warn_partial(message, self.warnings)

    def _feature_values(self, feature: Feature, raw: Any) -> list[float | None] | None:
        width = len(feature.axis_names)
        if is_sequence_value(raw):
            values = [to_float(item) for item in list(raw)[:width]]
            return values + [None] * (width - len(values))
        value = to_float(raw)
        if value is None and raw is not None:
            return None
        return [value] + [None] * (width - 1)

    def normalize(self, raw_row: dict[str, Any]) -> CanonicalRow:
        """Convert one raw row.

        Args:
            raw_row: Column name -> value as read from parquet.

        Returns:
            The canonical row.
        """
        row = CanonicalRow(
            timestamp=to_float(raw_row.get("timestamp")),
            episode_index=to_int(raw_row.get("episode_index")),
            frame_index=to_int(raw_row.get("frame_index")),
            index=to_int(raw_row.get("index")),
            task_index=to_int(raw_row.get("task_index")),
        )

        task = raw_row.get("task")
        row.task = task if isinstance(task, str) and task else self.tasks.lookup(row.task_index)

        for feature in self.chart_features:
            if feature.name not in raw_row:
                continue
            values = self._feature_values(feature, raw_row[feature.name])
            if values is None:
                self._report(
                    feature.name,
                    f"Feature '{feature.name}' has non-numeric values; omitted from charts",
                )
                continue
            row.values[feature.name] = values

        row.reward = to_float(raw_row.get("next.reward"))
        done = raw_row.get("next.done")
        if done is not None:
            row.done = bool(to_int(done, 0))

        for key, value in raw_row.items():
            if key.startswith(INSTRUCTION_PREFIX) and isinstance(value, str):
                row.extras[key] = value

        return row

    def normalize_rows(self, raw_rows: list[dict[str, Any]]) -> list[CanonicalRow]:
        return [self.normalize(raw) for raw in raw_rows]

    def timestamps(self, rows: list[CanonicalRow]) -> list[float | None]:
        """Time axis for the rows.

        Uses the stored timestamp, falling back to frame_index / fps and then
        to the row position.
        """
        fps = self.metadata.fps if self.metadata.fps > 0 else None
        result = []
        for position, row in enumerate(rows):
            if row.timestamp is not None:
                result.append(row.timestamp)
            elif fps is not None:
                frame = row.frame_index if row.frame_index is not None else position
                result.append(frame / fps)
            else:
                result.append(None)
        return result

    def episode_task(
        self,
        rows: list[CanonicalRow],
        scan_all_rows: bool = False,
    ) -> str | None:
        """Resolve the task shown for an episode.

        Precedence: language instructions, then a task string stored in the
        rows, then the task table entry of the first row's task_index.
        """
        instructions = extract_language_instructions([row.extras for row in rows], scan_all_rows)
        if instructions:
            return instructions
        for row in rows:
            if row.task:
                return row.task
        if rows:
            return self.tasks.lookup(rows[0].task_index)
        return None
