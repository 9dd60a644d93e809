"""Layout registry for Loupe.

The registry provides a plugin pattern for per-version layout strategies.
Layouts register themselves using a decorator, and the registry handles
instantiation once a dataset's version is resolved.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from loupe.core.exceptions import UnsupportedVersionError
from loupe.core.models import RESOLUTION_ORDER, FormatVersion

if TYPE_CHECKING:
    from loupe.core.protocols import EpisodeLayout
    from loupe.session import EngineContext


class LayoutRegistry:
    """Central registry for layout strategies.

    Layouts register themselves using class decorators:

        @LayoutRegistry.register(FormatVersion.V2_0, FormatVersion.V2_1)
        class PerEpisodeLayout:
            ...

    Usage:
        layout = LayoutRegistry.create(FormatVersion.V3_0, ctx)
    """

    _layouts: dict[FormatVersion, type] = {}

    @classmethod
    def register(cls, *versions: FormatVersion):
        """Decorator to register a layout class for one or more versions.

        Args:
            versions: Format versions the class can read.

        Returns:
            Decorator function.
        """

        def decorator(layout_cls: type) -> type:
            for version in versions:
                cls._layouts[version] = layout_cls
            return layout_cls

        return decorator

    @classmethod
    def create(cls, version: FormatVersion, ctx: EngineContext) -> EpisodeLayout:
        """Instantiate the layout for a version.

        Args:
            version: Resolved format version.
            ctx: Engine context handed to the layout.

        Returns:
            Layout instance.

        Raises:
            UnsupportedVersionError: If no layout is registered for the version.
        """
        if version not in cls._layouts:
            raise UnsupportedVersionError(
                getattr(version, "value", str(version)),
                available_versions=cls.list_versions(),
            )
        return cls._layouts[version](ctx, version)

    @classmethod
    def list_versions(cls) -> list[str]:
        """Registered versions in resolution order."""
        return [version.value for version in RESOLUTION_ORDER if version in cls._layouts]

    @classmethod
    def has_layout(cls, version: FormatVersion) -> bool:
        return version in cls._layouts

    @classmethod
    def clear(cls) -> None:
        """Clear all registered layouts. Primarily for testing."""
        cls._layouts.clear()
