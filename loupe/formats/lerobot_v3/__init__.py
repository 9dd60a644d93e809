"""LeRobot v3 format support for Loupe.

LeRobot v3.0 packs many episodes into shared data shards and video files.
"""

from loupe.formats.lerobot_v3.layout import LeRobotV3Layout

__all__ = ["LeRobotV3Layout"]
