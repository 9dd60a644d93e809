"""Episode assembly for Loupe.

Normalizes raw rows, groups chart series, aligns videos and assembles the
final EpisodeData.
"""

from loupe.episode.assembler import EpisodeAssembler
from loupe.episode.charts import SERIES_NAME_DELIMITER, ChartGrouper, flatten, series_suffix
from loupe.episode.normalizer import (
    SchemaNormalizer,
    evenly_sample,
    extract_language_instructions,
)
from loupe.episode.stats import EpisodeLengthStats, column_min_max, load_episode_length_stats
from loupe.episode.video import VideoAligner

__all__ = [
    "SERIES_NAME_DELIMITER",
    "ChartGrouper",
    "EpisodeAssembler",
    "EpisodeLengthStats",
    "SchemaNormalizer",
    "VideoAligner",
    "column_min_max",
    "evenly_sample",
    "extract_language_instructions",
    "flatten",
    "load_episode_length_stats",
    "series_suffix",
]
