"""Format layouts for Loupe.

This module provides the layout registry and imports the layout
implementations so their registration decorators run.
"""

from loupe.formats.registry import LayoutRegistry
from loupe.formats.lerobot_v2 import LeRobotV2Layout
from loupe.formats.lerobot_v3 import LeRobotV3Layout

__all__ = ["LayoutRegistry", "LeRobotV2Layout", "LeRobotV3Layout"]
