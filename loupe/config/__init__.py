"""Configuration module for Loupe.

Provides the viewer configuration and its YAML/environment loaders.
"""

from loupe.config.models import DEFAULT_DATASET_URL, ViewerConfig

__all__ = ["DEFAULT_DATASET_URL", "ViewerConfig"]
