"""Tests for schema normalization."""

import json

import numpy as np
import pytest

from loupe.core.exceptions import PartialDataWarning
from loupe.core.models import DatasetMetadata, FormatVersion, TaskTable
from loupe.episode.normalizer import (
    SchemaNormalizer,
    evenly_sample,
    extract_language_instructions,
    instruction_columns,
)
from loupe.formats.lerobot_v2.layout import EXCLUDED_COLUMNS as V2_EXCLUDED
from loupe.formats.lerobot_v3.layout import EXCLUDED_COLUMNS as V3_EXCLUDED

from conftest import MOTORS, TASKS, V2_DATA_PATH, info_json


@pytest.fixture
def metadata() -> DatasetMetadata:
    return DatasetMetadata.from_dict(json.loads(info_json("v2.1", V2_DATA_PATH, None)))


@pytest.fixture
def tasks() -> TaskTable:
    return TaskTable(entries=list(TASKS))


class TestLanguageInstructions:
    """Tests for instruction extraction."""

    def test_joined_in_field_order(self):
        rows = [{"language_instruction_2": "then place", "language_instruction": "pick"}]
        assert extract_language_instructions(rows) == "pick\nthen place"

    def test_numeric_order_not_lexical(self):
        row = {f"language_instruction_{n}": f"step {n}" for n in (10, 2)}
        row["language_instruction"] = "step 1"
        assert extract_language_instructions([row]) == "step 1\nstep 2\nstep 10"

    def test_blank_rows_skipped(self):
        rows = [{"language_instruction": ""}] * 4 + [{"language_instruction": "go"}]
        assert extract_language_instructions(rows) == "go"

    def test_only_samples_checked(self):
        """Test rows between first, middle and last are not scanned."""
        rows = [{"language_instruction": ""} for _ in range(9)]
        rows[2]["language_instruction"] = "hidden"
        assert extract_language_instructions(rows) is None
        assert extract_language_instructions(rows, scan_all=True) == "hidden"

    def test_no_rows(self):
        assert extract_language_instructions([]) is None

    def test_instruction_columns(self):
        assert instruction_columns(3) == [
            "language_instruction",
            "language_instruction_2",
            "language_instruction_3",
        ]


class TestEvenlySample:
    """Tests for down-sampling."""

    def test_short_list_unchanged(self):
        assert evenly_sample([1, 2, 3], 5) == [1, 2, 3]

    def test_keeps_endpoints(self):
        items = list(range(1000))
        sampled = evenly_sample(items, 100)
        assert len(sampled) == 100
        assert sampled[0] == 0
        assert sampled[-1] == 999
        assert sampled == sorted(sampled)


class TestSchemaNormalizer:
    """Tests for SchemaNormalizer."""

    def test_chart_features(self, metadata):
        normalizer = SchemaNormalizer(FormatVersion.V2_1, metadata, excluded_columns=V2_EXCLUDED)
        names = [f.name for f in normalizer.chart_features]
        assert names == ["observation.state", "action", "next.reward"]

    def test_chart_features_match_across_versions(self, metadata):
        v2 = SchemaNormalizer(FormatVersion.V2_1, metadata, excluded_columns=V2_EXCLUDED)
        v3 = SchemaNormalizer(FormatVersion.V3_0, metadata, excluded_columns=V3_EXCLUDED)
        assert [f.name for f in v2.chart_features] == [f.name for f in v3.chart_features]

    def test_done_flag_never_charted(self, metadata):
        """Test next.done is left out of the charts under v2.x as under v3.0."""
        assert "next.done" in metadata.features
        v2 = SchemaNormalizer(FormatVersion.V2_1, metadata, excluded_columns=V2_EXCLUDED)
        assert "next.done" not in [f.name for f in v2.chart_features]
        assert "next.done" not in V2_EXCLUDED

    def test_ignored_columns(self, metadata):
        normalizer = SchemaNormalizer(FormatVersion.V2_1, metadata, excluded_columns=V2_EXCLUDED)
        ignored = normalizer.ignored_columns
        assert "observation.depth" in ignored
        assert "frame_index" in ignored
        assert "observation.images.top" not in ignored
        assert "action" not in ignored

    def test_requested_columns(self, metadata):
        normalizer = SchemaNormalizer(FormatVersion.V2_1, metadata, excluded_columns=V2_EXCLUDED)
        columns = normalizer.requested_columns(2)
        assert "observation.depth" not in columns
        assert columns[-2:] == ["language_instruction", "language_instruction_2"]
        assert len(columns) == len(set(columns))

    def test_normalize(self, metadata, tasks):
        normalizer = SchemaNormalizer(FormatVersion.V3_0, metadata, tasks, V3_EXCLUDED)
        row = normalizer.normalize(
            {
                "timestamp": np.float32(0.5),
                "frame_index": np.int64(5),
                "episode_index": "2",
                "index": 14,
                "task_index": np.int64(2),
                "observation.state": np.arange(6, dtype=np.float32),
                "action": [1.0, 2.0, 3.0],
                "next.reward": 1,
                "next.done": True,
                "language_instruction": "stack",
            }
        )
        assert row.timestamp == 0.5
        assert row.frame_index == 5
        assert row.episode_index == 2
        assert row.task == "stack cups"
        assert row.values["observation.state"] == [0.0, 1.0, 2.0, 3.0, 4.0, 5.0]
        assert row.values["action"] == [1.0, 2.0, 3.0, None, None, None, None]
        assert row.reward == 1.0
        assert row.done is True
        assert row.extras == {"language_instruction": "stack"}

    def test_stored_task_wins(self, metadata, tasks):
        normalizer = SchemaNormalizer(FormatVersion.V2_1, metadata, tasks, V2_EXCLUDED)
        row = normalizer.normalize({"task_index": 0, "task": "from the row"})
        assert row.task == "from the row"

    def test_unknown_task_index(self, metadata, tasks):
        normalizer = SchemaNormalizer(FormatVersion.V2_1, metadata, tasks, V2_EXCLUDED)
        assert normalizer.normalize({"task_index": 99}).task is None

    def test_non_numeric_feature_reported_once(self, metadata):
        sink: list[str] = []
        normalizer = SchemaNormalizer(
            FormatVersion.V2_1, metadata, excluded_columns=V2_EXCLUDED, warnings=sink
        )
        with pytest.warns(PartialDataWarning):
            rows = normalizer.normalize_rows([{"next.reward": "n/a"}, {"next.reward": "bad"}])
        assert all("next.reward" not in row.values for row in rows)
        assert len(sink) == 1

    def test_timestamps_fall_back_to_frame_index(self, metadata):
        normalizer = SchemaNormalizer(FormatVersion.V2_1, metadata)
        rows = normalizer.normalize_rows(
            [{"timestamp": 0.0}, {"frame_index": 5}, {"timestamp": None}]
        )
        assert normalizer.timestamps(rows) == [0.0, 0.5, 0.2]

    def test_episode_task_precedence(self, metadata, tasks):
        normalizer = SchemaNormalizer(FormatVersion.V2_1, metadata, tasks, V2_EXCLUDED)
        plain = normalizer.normalize_rows([{"task_index": 1}])
        assert normalizer.episode_task(plain) == TASKS[1]

        instructed = normalizer.normalize_rows(
            [{"task_index": 1, "language_instruction": "wave"}]
        )
        assert normalizer.episode_task(instructed) == "wave"
        assert normalizer.episode_task([]) is None

    def test_state_names(self, metadata):
        normalizer = SchemaNormalizer(FormatVersion.V2_1, metadata, excluded_columns=V2_EXCLUDED)
        state = normalizer.chart_features[0]
        assert state.axis_names == tuple(MOTORS)
