"""Tests for the per-version layouts."""

import asyncio
import json

import pytest

from loupe.core.exceptions import EpisodeNotFoundError, ResourceNotFoundError
from loupe.core.models import (
    DatasetIdentity,
    DatasetMetadata,
    EpisodeAddressV2,
    EpisodeAddressV3,
    FormatVersion,
)
from loupe.formats.lerobot_v2.layout import LeRobotV2Layout
from loupe.formats.lerobot_v3.layout import LeRobotV3Layout
from loupe.session import EngineContext

from conftest import (
    CAMERAS,
    EPISODE_LENGTHS,
    REPO_ID,
    TASKS,
    V2_DATA_PATH,
    V3_DATA_PATH,
    V3_VIDEO_PATH,
    FakeTransport,
    build_v3_files,
    dataset_url,
    info_json,
    parquet_bytes,
)

IDENTITY = DatasetIdentity.parse(REPO_ID)


def v2_metadata(version: str = "v2.1") -> DatasetMetadata:
    return DatasetMetadata.from_dict(json.loads(info_json(version, V2_DATA_PATH, None)))


def v3_metadata() -> DatasetMetadata:
    return DatasetMetadata.from_dict(json.loads(info_json("v3.0", V3_DATA_PATH, V3_VIDEO_PATH)))


class TestLeRobotV2Layout:
    """Tests for the per-episode layout."""

    def test_locate_is_arithmetic(self):
        """Test the chunk is derived from chunks_size without any fetch."""
        transport = FakeTransport()
        layout = LeRobotV2Layout(EngineContext(transport), FormatVersion.V2_1)
        address = asyncio.run(layout.locate(IDENTITY, v2_metadata(), 1234))
        assert address == EpisodeAddressV2(episode_index=1234, episode_chunk=1)
        assert transport.total_fetches == 0

    def test_data_path(self):
        layout = LeRobotV2Layout(EngineContext(FakeTransport()))
        path = layout.data_path(v2_metadata(), EpisodeAddressV2(42, 0))
        assert path == "data/chunk-000/episode_000042.parquet"

    def test_load_rows(self, v21_transport):
        layout = LeRobotV2Layout(EngineContext(v21_transport), FormatVersion.V2_1)
        rows = asyncio.run(
            layout.load_rows(IDENTITY, v2_metadata(), EpisodeAddressV2(1, 0), ["index", "action"])
        )
        assert len(rows) == EPISODE_LENGTHS[1]
        assert [row["index"] for row in rows] == [5, 6, 7, 8]
        assert len(rows[0]["action"]) == 7

    def test_load_rows_missing_file(self, v21_transport):
        layout = LeRobotV2Layout(EngineContext(v21_transport), FormatVersion.V2_1)
        with pytest.raises(ResourceNotFoundError):
            asyncio.run(layout.load_rows(IDENTITY, v2_metadata(), EpisodeAddressV2(9, 0)))

    def test_load_tasks_cached(self, v21_transport):
        layout = LeRobotV2Layout(EngineContext(v21_transport), FormatVersion.V2_1)

        async def run():
            first = await layout.load_tasks(IDENTITY)
            second = await layout.load_tasks(IDENTITY)
            return first, second

        first, second = asyncio.run(run())
        assert first.entries == TASKS
        assert second is first
        assert v21_transport.fetches[dataset_url("v2.1", "meta/tasks.jsonl")] == 1

    def test_load_tasks_missing(self):
        layout = LeRobotV2Layout(EngineContext(FakeTransport()), FormatVersion.V2_1)
        with pytest.raises(ResourceNotFoundError):
            asyncio.run(layout.load_tasks(IDENTITY))

    def test_episode_lengths(self, v20_transport):
        layout = LeRobotV2Layout(EngineContext(v20_transport), FormatVersion.V2_0)
        lengths = asyncio.run(layout.episode_lengths(IDENTITY, v2_metadata("v2.0")))
        assert lengths == {0: 5, 1: 4, 2: 6}


class TestLeRobotV3Layout:
    """Tests for the shared-shard layout."""

    def make(self, files=None):
        transport = FakeTransport(build_v3_files() if files is None else files)
        return transport, LeRobotV3Layout(EngineContext(transport))

    def test_locate_first_file(self):
        _, layout = self.make()
        address = asyncio.run(layout.locate(IDENTITY, v3_metadata(), 1))
        assert address.dataset_from_index == 5
        assert address.dataset_to_index == 9
        assert address.length == 4
        assert address.data_chunk_index == 0
        assert address.data_file_index == 0
        assert address.camera_field(CAMERAS[0], "from_timestamp") == pytest.approx(0.5)

    def test_locate_walks_files(self):
        """Test an episode listed in a later metadata file is found."""
        _, layout = self.make()
        address = asyncio.run(layout.locate(IDENTITY, v3_metadata(), 2))
        assert address.episode_index == 2
        assert (address.dataset_from_index, address.dataset_to_index) == (9, 15)
        assert address.video_chunk_index == 0
        assert address.video_from_timestamp == pytest.approx(0.9)

    def test_locate_missing_episode(self):
        _, layout = self.make()
        with pytest.raises(EpisodeNotFoundError) as exc_info:
            asyncio.run(layout.locate(IDENTITY, v3_metadata(), 7))
        assert exc_info.value.searched.endswith("meta/episodes/chunk-000/file-001.parquet")

    def test_locate_without_metadata(self):
        _, layout = self.make({})
        with pytest.raises(EpisodeNotFoundError):
            asyncio.run(layout.locate(IDENTITY, v3_metadata(), 0))

    def test_load_rows_across_row_groups(self):
        """Test rows 5..8 span the first two 4-row groups."""
        _, layout = self.make()

        async def run():
            address = await layout.locate(IDENTITY, v3_metadata(), 1)
            return await layout.load_rows(IDENTITY, v3_metadata(), address, ["index", "episode_index"])

        rows = asyncio.run(run())
        assert [row["index"] for row in rows] == [5, 6, 7, 8]
        assert {row["episode_index"] for row in rows} == {1}

    def test_load_rows_shard_offset(self):
        """Test global indices are made shard-relative."""
        files = {
            dataset_url("v3.0", "data/chunk-000/file-003.parquet"): parquet_bytes(
                {
                    "index": list(range(100, 110)),
                    "episode_index": [7] * 4 + [8] * 6,
                },
                row_group_size=4,
            )
        }
        _, layout = self.make(files)
        address = EpisodeAddressV3(
            episode_index=8,
            data_chunk_index=0,
            data_file_index=3,
            dataset_from_index=104,
            dataset_to_index=110,
            length=6,
        )
        rows = asyncio.run(layout.load_rows(IDENTITY, v3_metadata(), address))
        assert [row["index"] for row in rows] == list(range(104, 110))

    def test_load_rows_empty_range_reads_one_row(self):
        files = {
            dataset_url("v3.0", "data/chunk-000/file-000.parquet"): parquet_bytes(
                {"index": list(range(10)), "episode_index": [0] * 10}
            )
        }
        _, layout = self.make(files)
        address = EpisodeAddressV3(
            episode_index=0,
            data_chunk_index=0,
            data_file_index=0,
            dataset_from_index=3,
            dataset_to_index=3,
            length=0,
        )
        rows = asyncio.run(layout.load_rows(IDENTITY, v3_metadata(), address))
        assert [row["index"] for row in rows] == [3]

    def test_load_rows_without_index_column(self):
        """Test shards lacking "index" are filtered by episode_index."""
        files = {
            dataset_url("v3.0", "data/chunk-000/file-000.parquet"): parquet_bytes(
                {"episode_index": [0, 0, 1, 1, 1], "frame_index": [0, 1, 0, 1, 2]}
            )
        }
        _, layout = self.make(files)
        address = EpisodeAddressV3(
            episode_index=1,
            data_chunk_index=0,
            data_file_index=0,
            dataset_from_index=2,
            dataset_to_index=5,
            length=3,
        )
        rows = asyncio.run(layout.load_rows(IDENTITY, v3_metadata(), address, ["frame_index"]))
        assert [row["frame_index"] for row in rows] == [0, 1, 2]

    def test_load_tasks_from_index(self):
        """Test task strings stored as the DataFrame index are recovered."""
        _, layout = self.make()
        tasks = asyncio.run(layout.load_tasks(IDENTITY))
        assert tasks.entries == TASKS
        assert tasks.lookup(1) == "pick up the cube"

    def test_load_tasks_from_column(self):
        files = {
            dataset_url("v3.0", "meta/tasks.parquet"): parquet_bytes(
                {"task_index": [1, 0], "task": ["second", "first"]}
            )
        }
        _, layout = self.make(files)
        tasks = asyncio.run(layout.load_tasks(IDENTITY))
        assert tasks.entries == ["first", "second"]

    def test_episode_lengths(self):
        _, layout = self.make()
        lengths = asyncio.run(layout.episode_lengths(IDENTITY, v3_metadata()))
        assert lengths == dict(enumerate(EPISODE_LENGTHS))
