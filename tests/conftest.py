"""Pytest configuration and fixtures for Loupe tests.

Datasets are built in memory with pyarrow and served by FakeTransport, which
counts every fetch and existence probe per URL.
"""

from __future__ import annotations

import json
from collections import Counter

import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq
import pytest

from loupe.config.models import ViewerConfig
from loupe.core.exceptions import ResourceNotFoundError
from loupe.episode.assembler import EpisodeAssembler
from loupe.session import SessionCache

BASE_URL = "https://huggingface.co/datasets"
REPO_ID = "lerobot/loupe_test"
FPS = 10
EPISODE_LENGTHS = [5, 4, 6]
TASKS = ["push the block", "pick up the cube", "stack cups"]
MOTORS = ["shoulder_pan", "shoulder_lift", "elbow", "wrist_flex", "wrist_roll", "gripper"]
ACTION_AXES = MOTORS + ["gripper_force"]
CAMERAS = ["observation.images.top", "observation.images.wrist"]

V2_DATA_PATH = "data/chunk-{episode_chunk:03d}/episode_{episode_index:06d}.parquet"
V2_VIDEO_PATH = "videos/chunk-{episode_chunk:03d}/{video_key}/episode_{episode_index:06d}.mp4"
V3_DATA_PATH = "data/chunk-{chunk_index:03d}/file-{file_index:03d}.parquet"
V3_VIDEO_PATH = "videos/{video_key}/chunk-{chunk_index:03d}/file-{file_index:03d}.mp4"


class FakeTransport:
    """In-memory transport keyed by absolute URL."""

    def __init__(self, files: dict[str, bytes] | None = None):
        self.files = dict(files or {})
        self.fetches: Counter[str] = Counter()
        self.probes: Counter[str] = Counter()

    async def fetch(self, url: str) -> bytes:
        self.fetches[url] += 1
        if url not in self.files:
            raise ResourceNotFoundError(url)
        return self.files[url]

    async def exists(self, url: str) -> bool:
        self.probes[url] += 1
        return url in self.files

    @property
    def total_fetches(self) -> int:
        return sum(self.fetches.values())

    @property
    def total_probes(self) -> int:
        return sum(self.probes.values())


def dataset_url(version: str, path: str, repo_id: str = REPO_ID) -> str:
    return f"{BASE_URL}/{repo_id}/resolve/{version}/{path}"


def parquet_bytes(columns: dict[str, list], row_group_size: int | None = None) -> bytes:
    """Write columns to an in-memory parquet file."""
    sink = pa.BufferOutputStream()
    pq.write_table(pa.table(columns), sink, row_group_size=row_group_size)
    return sink.getvalue().to_pybytes()


def frame_parquet_bytes(frame: pd.DataFrame) -> bytes:
    """Write a DataFrame, index included, to an in-memory parquet file."""
    sink = pa.BufferOutputStream()
    pq.write_table(pa.Table.from_pandas(frame), sink)
    return sink.getvalue().to_pybytes()


def episode_columns(episode: int, offset: int) -> dict[str, list]:
    """Per-frame columns of one synthetic episode."""
    n = EPISODE_LENGTHS[episode]
    frames = range(n)
    instruction = "pick up the cube" if episode == 1 else ""
    second = "place it in the bin" if episode == 1 else ""
    return {
        "observation.state": [[episode * 10 + f + j * 0.25 for j in range(6)] for f in frames],
        "action": [[f * 0.5 + j for j in range(7)] for f in frames],
        "observation.depth": [[[0.0, 1.0], [2.0, 3.0]] for _ in frames],
        "next.reward": [1.0 if f == n - 1 else 0.0 for f in frames],
        "next.done": [f == n - 1 for f in frames],
        "timestamp": [f / FPS for f in frames],
        "frame_index": list(frames),
        "episode_index": [episode] * n,
        "index": [offset + f for f in frames],
        "task_index": [episode] * n,
        "language_instruction": [instruction] * n,
        "language_instruction_2": [second] * n,
    }


def features() -> dict:
    video = {
        "dtype": "video",
        "shape": [48, 64, 3],
        "names": ["height", "width", "channels"],
        "info": {"video.fps": FPS, "video.codec": "av1"},
    }
    scalar_int = {"dtype": "int64", "shape": [1], "names": None}
    return {
        "observation.state": {"dtype": "float32", "shape": [6], "names": {"motors": MOTORS}},
        "action": {"dtype": "float32", "shape": [7], "names": {"motors": ACTION_AXES}},
        "observation.depth": {"dtype": "float32", "shape": [2, 2], "names": None},
        "next.reward": {"dtype": "float32", "shape": [1], "names": None},
        "next.done": {"dtype": "bool", "shape": [1], "names": None},
        "timestamp": {"dtype": "float32", "shape": [1], "names": None},
        "frame_index": scalar_int,
        "episode_index": scalar_int,
        "index": scalar_int,
        "task_index": scalar_int,
        CAMERAS[0]: video,
        CAMERAS[1]: video,
    }


def info_json(version: str, data_path: str, video_path: str | None) -> bytes:
    info = {
        "codebase_version": version,
        "robot_type": "so100",
        "total_episodes": len(EPISODE_LENGTHS),
        "total_frames": sum(EPISODE_LENGTHS),
        "total_tasks": len(TASKS),
        "total_videos": len(EPISODE_LENGTHS) * len(CAMERAS),
        "total_chunks": 1,
        "chunks_size": 1000,
        "fps": FPS,
        "splits": {"train": f"0:{len(EPISODE_LENGTHS)}"},
        "data_path": data_path,
        "video_path": video_path,
        "features": features(),
    }
    return json.dumps(info).encode()


def build_v2_files(version: str = "v2.1", repo_id: str = REPO_ID) -> dict[str, bytes]:
    """Files of a per-episode dataset. The wrist video of episode 2 is missing."""
    files = {
        dataset_url(version, "meta/info.json", repo_id): info_json(
            version, V2_DATA_PATH, V2_VIDEO_PATH
        ),
        dataset_url(version, "meta/tasks.jsonl", repo_id): "\n".join(
            json.dumps({"task_index": i, "task": task}) for i, task in enumerate(TASKS)
        ).encode(),
        dataset_url(version, "meta/episodes.jsonl", repo_id): "\n".join(
            json.dumps({"episode_index": i, "tasks": [TASKS[i]], "length": n})
            for i, n in enumerate(EPISODE_LENGTHS)
        ).encode(),
    }

    offset = 0
    for episode, length in enumerate(EPISODE_LENGTHS):
        path = f"data/chunk-000/episode_{episode:06d}.parquet"
        files[dataset_url(version, path, repo_id)] = parquet_bytes(episode_columns(episode, offset))
        offset += length
        for camera in CAMERAS:
            if camera == CAMERAS[1] and episode == 2:
                continue
            video = f"videos/chunk-000/{camera}/episode_{episode:06d}.mp4"
            files[dataset_url(version, video, repo_id)] = b"fake-mp4"
    return files


def build_v3_files(repo_id: str = REPO_ID) -> dict[str, bytes]:
    """Files of a shared-shard dataset.

    Episodes 0 and 1 are listed in episodes file-000, episode 2 in file-001.
    All rows live in one data shard written with 4-row row groups.
    """
    version = "v3.0"
    files = {
        dataset_url(version, "meta/info.json", repo_id): info_json(
            version, V3_DATA_PATH, V3_VIDEO_PATH
        ),
        dataset_url(version, "meta/tasks.parquet", repo_id): frame_parquet_bytes(
            pd.DataFrame({"task_index": list(range(len(TASKS)))}, index=pd.Index(TASKS, name="task"))
        ),
    }

    data: dict[str, list] = {}
    episode_rows = []
    offset = 0
    for episode, length in enumerate(EPISODE_LENGTHS):
        for key, values in episode_columns(episode, offset).items():
            data.setdefault(key, []).extend(values)
        row = {
            "episode_index": episode,
            "data/chunk_index": 0,
            "data/file_index": 0,
            "dataset_from_index": offset,
            "dataset_to_index": offset + length,
            "length": length,
            "tasks": [TASKS[episode]],
        }
        for camera in CAMERAS:
            row[f"videos/{camera}/chunk_index"] = 0
            row[f"videos/{camera}/file_index"] = 0
            row[f"videos/{camera}/from_timestamp"] = offset / FPS
            row[f"videos/{camera}/to_timestamp"] = (offset + length) / FPS
        episode_rows.append(row)
        offset += length

    files[dataset_url(version, V3_DATA_PATH.format(chunk_index=0, file_index=0), repo_id)] = (
        parquet_bytes(data, row_group_size=4)
    )

    def to_columns(rows: list[dict]) -> dict[str, list]:
        return {key: [row[key] for row in rows] for key in rows[0]}

    files[dataset_url(version, "meta/episodes/chunk-000/file-000.parquet", repo_id)] = (
        parquet_bytes(to_columns(episode_rows[:2]))
    )
    files[dataset_url(version, "meta/episodes/chunk-000/file-001.parquet", repo_id)] = (
        parquet_bytes(to_columns(episode_rows[2:]))
    )
    for camera in CAMERAS:
        path = V3_VIDEO_PATH.format(video_key=camera, chunk_index=0, file_index=0)
        files[dataset_url(version, path, repo_id)] = b"fake-mp4"
    return files


@pytest.fixture
def v21_transport() -> FakeTransport:
    """Transport serving a v2.1 dataset."""
    return FakeTransport(build_v2_files("v2.1"))


@pytest.fixture
def v20_transport() -> FakeTransport:
    """Transport serving a dataset that only has a v2.0 revision."""
    return FakeTransport(build_v2_files("v2.0"))


@pytest.fixture
def v3_transport() -> FakeTransport:
    """Transport serving a v3.0 dataset."""
    return FakeTransport(build_v3_files())


@pytest.fixture
def make_assembler():
    """Factory for assemblers over a transport with a fresh session cache."""

    def factory(transport: FakeTransport, **config) -> EpisodeAssembler:
        return EpisodeAssembler(
            transport=transport,
            config=ViewerConfig(**config),
            cache=SessionCache(),
        )

    return factory
