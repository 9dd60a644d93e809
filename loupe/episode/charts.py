"""Chart grouping.

Turns canonical rows into named chart groups. Series are first gathered by
axis suffix, so ``observation.state | elbow`` and ``action | elbow`` land in
the same set; scalar features form a set of their own. Sets whose value
ranges share a scale are then merged, and large groups are split into
numbered parts, never truncated.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from loupe.core.models import CanonicalRow, ChartDataGroup, ChartSeries, Feature

SERIES_NAME_DELIMITER = " | "

# Two sets share a chart when log10(|min|) and log10(|max|) are this close
SCALE_GROUPING_DECADES = 2.0
EPSILON = 1e-9


def series_key(feature: Feature, axis: str) -> str:
    return f"{feature.name}{SERIES_NAME_DELIMITER}{axis}"


def series_suffix(key: str) -> str:
    """Axis part of a series key. Keys without a delimiter are their own suffix."""
    _, delimiter, suffix = key.partition(SERIES_NAME_DELIMITER)
    return suffix if delimiter else key


@dataclass
class _Range:
    low: float
    high: float

    @property
    def finite(self) -> bool:
        return math.isfinite(self.low) and math.isfinite(self.high)

    def logs(self) -> tuple[float, float]:
        return (
            math.log10(abs(self.low) + EPSILON),
            math.log10(abs(self.high) + EPSILON),
        )

    def close_to(self, other: _Range) -> bool:
        low, high = self.logs()
        other_low, other_high = other.logs()
        return (
            abs(low - other_low) <= SCALE_GROUPING_DECADES
            and abs(high - other_high) <= SCALE_GROUPING_DECADES
        )


def _value_range(series: list[ChartSeries]) -> _Range:
    finite = [v for s in series for v in s.values if v is not None and math.isfinite(v)]
    if not finite:
        return _Range(math.inf, -math.inf)
    return _Range(min(finite), max(finite))


class ChartGrouper:
    """Builds ChartDataGroups from canonical rows.

    Usage:
        grouper = ChartGrouper(max_series_per_group=6)
        groups = grouper.group(rows, features, timestamps)
    """

    def __init__(self, max_series_per_group: int = 6):
        if max_series_per_group < 1:
            raise ValueError("max_series_per_group must be positive")
        self.max_series_per_group = max_series_per_group

    def _series(self, rows: list[CanonicalRow], feature: Feature) -> list[ChartSeries]:
        axes = feature.axis_names
        if len(axes) <= 1:
            values = [
                row.values[feature.name][0] if row.values.get(feature.name) else None
                for row in rows
            ]
            return [ChartSeries(key=feature.name, values=values)]

        series = [ChartSeries(key=series_key(feature, axis)) for axis in axes]
        for row in rows:
            values = row.values.get(feature.name)
            for i, item in enumerate(series):
                item.values.append(values[i] if values is not None and i < len(values) else None)
        return series

    def _suffix_sets(
        self,
        rows: list[CanonicalRow],
        features: list[Feature],
    ) -> dict[str, list[ChartSeries]]:
        sets: dict[str, list[ChartSeries]] = {}
        for feature in features:
            for series in self._series(rows, feature):
                sets.setdefault(series_suffix(series.key), []).append(series)
        return sets

    def _merge_by_scale(
        self,
        sets: dict[str, list[ChartSeries]],
    ) -> list[tuple[str, list[ChartSeries]]]:
        ranges = {suffix: _value_range(series) for suffix, series in sets.items()}
        used: set[str] = set()
        units: list[tuple[str, list[list[ChartSeries]]]] = []
        for suffix, series in sets.items():
            if suffix in used:
                continue
            used.add(suffix)
            unit = [series]
            anchor = ranges[suffix]
            if anchor.finite:
                for other_suffix, other in sets.items():
                    other_range = ranges[other_suffix]
                    if other_suffix in used or not other_range.finite:
                        continue
                    if other_range.low == other_range.high:
                        continue
                    if anchor.close_to(other_range):
                        unit.append(other)
                        used.add(other_suffix)
            units.append((suffix, unit))

        # Units holding more sets first, first-seen order among equals
        units.sort(key=lambda item: -len(item[1]))
        return [(name, [s for members in unit for s in members]) for name, unit in units]

    def _split(
        self,
        name: str,
        series: list[ChartSeries],
        timestamps: list[float | None],
    ) -> list[ChartDataGroup]:
        size = self.max_series_per_group
        chunks = [series[i : i + size] for i in range(0, len(series), size)] or [[]]
        if len(chunks) == 1:
            return [ChartDataGroup(name=name, timestamps=list(timestamps), series=chunks[0])]
        return [
            ChartDataGroup(
                name=f"{name} [{part}/{len(chunks)}]",
                timestamps=list(timestamps),
                series=chunk,
                part=part,
                parts=len(chunks),
            )
            for part, chunk in enumerate(chunks, start=1)
        ]

    def group(
        self,
        rows: list[CanonicalRow],
        features: list[Feature],
        timestamps: list[float | None],
    ) -> list[ChartDataGroup]:
        """Group chart series.

        Args:
            rows: Canonical rows in frame order.
            features: Plottable features to chart.
            timestamps: Time axis, one entry per row.

        Returns:
            Groups named after the first suffix they hold, largest merges
            first. A set with no finite values keeps a group of its own.
        """
        groups: list[ChartDataGroup] = []
        for name, series in self._merge_by_scale(self._suffix_sets(rows, features)):
            groups.extend(self._split(name, series, timestamps))
        return groups


def flatten(
    groups: list[ChartDataGroup],
    timestamps: list[float | None],
) -> list[dict[str, float | None]]:
    """Flatten groups into one dict per frame.

    Each dict holds the timestamp and every series value for that frame,
    taken from ChartDataGroup.rows() so shorter series read as None.
    Parts of split groups are merged back.
    """
    tables = [group.rows() for group in groups]
    length = max([len(timestamps)] + [len(table) for table in tables])
    rows: list[dict[str, float | None]] = []
    for i in range(length):
        flat: dict[str, float | None] = {"timestamp": timestamps[i] if i < len(timestamps) else None}
        for group, table in zip(groups, tables):
            if i < len(table):
                flat.update((key, value) for key, value in table[i].items() if key != "timestamp")
            else:
                flat.update(dict.fromkeys(group.keys))
        rows.append(flat)
    return rows
