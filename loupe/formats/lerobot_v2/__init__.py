"""LeRobot v2 format support for Loupe.

LeRobot v2.0 and v2.1 store one parquet file per episode.
"""

from loupe.formats.lerobot_v2.layout import LeRobotV2Layout

__all__ = ["LeRobotV2Layout"]
