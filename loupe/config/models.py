"""Configuration models for Loupe.

Defines the viewer configuration and its loaders (dict, YAML, environment).
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

DEFAULT_DATASET_URL = "https://huggingface.co/datasets"
DEFAULT_MAX_EPISODE_POINTS = 4000
MIN_EPISODE_POINTS = 100


@dataclass
class ViewerConfig:
    """Configuration for episode assembly.

    Attributes:
        dataset_url: Base URL datasets are resolved against.
        token: Bearer token attached to every request, if set.
        timeout: Per-request timeout in seconds.
        max_episode_points: Rows kept after down-sampling an episode.
        max_series_per_group: Series per chart before a group is split.
        episodes: Optional filter of navigable episode indices.
        load_progress: Whether to look for reward-model progress files.
        scan_all_rows_for_instructions: Scan every row for language
            instructions instead of first/middle/last samples.
        max_instruction_fields: Highest language_instruction_N requested.
        adjacent_radius: Neighbours on each side returned for preloading.
    """

    dataset_url: str = DEFAULT_DATASET_URL
    token: str | None = None
    timeout: float = 10.0

    # Episode shaping
    max_episode_points: int = DEFAULT_MAX_EPISODE_POINTS
    max_series_per_group: int = 6
    episodes: list[int] | None = None

    # Optional branches
    load_progress: bool = True
    scan_all_rows_for_instructions: bool = False
    max_instruction_fields: int = 8
    adjacent_radius: int = 2

    def __post_init__(self) -> None:
        self.dataset_url = self.dataset_url.rstrip("/")
        if self.max_episode_points < MIN_EPISODE_POINTS:
            raise ValueError(f"max_episode_points must be >= {MIN_EPISODE_POINTS}")
        if self.max_series_per_group < 1:
            raise ValueError("max_series_per_group must be positive")
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")
        if self.max_instruction_fields < 1:
            raise ValueError("max_instruction_fields must be positive")
        if self.adjacent_radius < 0:
            raise ValueError("adjacent_radius cannot be negative")

    def navigable_episodes(self, total_episodes: int) -> list[int]:
        """List the episodes a viewer may navigate to.

        Args:
            total_episodes: Number of episodes in the dataset.

        Returns:
            The configured filter (sorted, de-duplicated, in range), or every
            index when no filter is set.
        """
        if self.episodes is None:
            return list(range(total_episodes))
        return sorted({i for i in self.episodes if 0 <= i < total_episodes})

    @classmethod
    def from_yaml(cls, path: Path | str) -> ViewerConfig:
        """Load configuration from a YAML file.

        Example YAML:
            dataset_url: https://huggingface.co/datasets
            max_episode_points: 2000
            episodes: [0, 4, 9]
            charts:
              max_series_per_group: 8

        Args:
            path: Path to YAML config file.

        Returns:
            ViewerConfig instance.
        """
        path = Path(path)
        with open(path) as f:
            data = yaml.safe_load(f) or {}

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ViewerConfig:
        """Create config from a dictionary.

        Args:
            data: Configuration dictionary. Chart and instruction settings
                may be nested under "charts" and "instructions".

        Returns:
            ViewerConfig instance.
        """
        kwargs: dict[str, Any] = {}

        for key in ("dataset_url", "token", "timeout", "max_episode_points",
                    "load_progress", "adjacent_radius"):
            if data.get(key) is not None:
                kwargs[key] = data[key]

        episodes = data.get("episodes")
        if episodes is not None:
            kwargs["episodes"] = [int(i) for i in episodes]

        charts = data.get("charts", {})
        if isinstance(charts, dict) and "max_series_per_group" in charts:
            kwargs["max_series_per_group"] = int(charts["max_series_per_group"])
        elif "max_series_per_group" in data:
            kwargs["max_series_per_group"] = int(data["max_series_per_group"])

        instructions = data.get("instructions", {})
        if isinstance(instructions, dict):
            if "scan_all_rows" in instructions:
                kwargs["scan_all_rows_for_instructions"] = bool(instructions["scan_all_rows"])
            if "max_fields" in instructions:
                kwargs["max_instruction_fields"] = int(instructions["max_fields"])

        return cls(**kwargs)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ViewerConfig:
        """Create config from environment variables.

        Reads LOUPE_DATASET_URL (or DATASET_URL), HF_TOKEN, EPISODES
        (whitespace-separated indices), MAX_EPISODE_POINTS and LOUPE_TIMEOUT.
        Unparseable values fall back to defaults.
        """
        env = os.environ if environ is None else environ
        kwargs: dict[str, Any] = {}

        url = env.get("LOUPE_DATASET_URL") or env.get("DATASET_URL")
        if url:
            kwargs["dataset_url"] = url

        token = env.get("HF_TOKEN")
        if token:
            kwargs["token"] = token

        episodes = env.get("EPISODES", "").split()
        if episodes:
            kwargs["episodes"] = [int(i) for i in episodes if i.lstrip("-").isdigit()]

        points = env.get("MAX_EPISODE_POINTS", "").strip()
        if points.isdigit() and int(points) >= MIN_EPISODE_POINTS:
            kwargs["max_episode_points"] = int(points)

        timeout = env.get("LOUPE_TIMEOUT", "").strip()
        if timeout:
            try:
                value = float(timeout)
            except ValueError:
                value = 0.0
            if value > 0:
                kwargs["timeout"] = value

        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        """Convert config to a dictionary for serialization.

        The token is never written out.
        """
        result: dict[str, Any] = {}

        if self.dataset_url != DEFAULT_DATASET_URL:
            result["dataset_url"] = self.dataset_url
        if self.timeout != 10.0:
            result["timeout"] = self.timeout
        if self.max_episode_points != DEFAULT_MAX_EPISODE_POINTS:
            result["max_episode_points"] = self.max_episode_points
        if self.episodes is not None:
            result["episodes"] = list(self.episodes)
        if not self.load_progress:
            result["load_progress"] = False
        if self.adjacent_radius != 2:
            result["adjacent_radius"] = self.adjacent_radius

        if self.max_series_per_group != 6:
            result["charts"] = {"max_series_per_group": self.max_series_per_group}

        instructions: dict[str, Any] = {}
        if self.scan_all_rows_for_instructions:
            instructions["scan_all_rows"] = True
        if self.max_instruction_fields != 8:
            instructions["max_fields"] = self.max_instruction_fields
        if instructions:
            result["instructions"] = instructions

        return result

    def to_yaml(self, path: Path | str) -> None:
        """Save configuration to a YAML file.

        Args:
            path: Path to output YAML file.
        """
        path = Path(path)
        with open(path, "w") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)
