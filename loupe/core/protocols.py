"""Protocol interfaces for Loupe.

This module defines the seams the engine is assembled from: the injected
transport capability and the per-version layout strategy. Using protocols
allows tests and embedders to supply their own implementations.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from loupe.core.models import (
        DatasetIdentity,
        DatasetMetadata,
        EpisodeAddressV2,
        EpisodeAddressV3,
        FormatVersion,
        TaskTable,
    )


@runtime_checkable
class Transport(Protocol):
    """Byte transport for remote dataset files.

    Implementations are responsible for:
    - Attaching any credentials (e.g., a bearer token)
    - Raising ResourceNotFoundError for missing resources
    - Raising FetchError for every other failure
    """

    async def fetch(self, url: str) -> bytes:
        """Fetch the full body of a resource.

        Args:
            url: Absolute resource URL.

        Returns:
            Raw response body.

        Raises:
            ResourceNotFoundError: If the resource does not exist.
            FetchError: On any other transport failure.
        """
        ...

    async def exists(self, url: str) -> bool:
        """Check whether a resource exists without downloading it.

        Args:
            url: Absolute resource URL.

        Returns:
            True if the resource is available.
        """
        ...


@runtime_checkable
class EpisodeLayout(Protocol):
    """Strategy interface for one on-disk format version.

    Each version (v2.x per-episode files, v3.0 shared shards) implements this
    protocol. Layouts are responsible for:
    - Locating an episode's address
    - Loading the episode's raw data rows
    - Loading the dataset's task table
    - Declaring which bookkeeping columns are excluded from charts
    """

    @property
    def version(self) -> FormatVersion:
        """Return the format version this layout reads."""
        ...

    @property
    def excluded_columns(self) -> frozenset[str]:
        """Return the bookkeeping columns removed before charting."""
        ...

    async def locate(
        self,
        identity: DatasetIdentity,
        metadata: DatasetMetadata,
        episode_index: int,
    ) -> EpisodeAddressV2 | EpisodeAddressV3:
        """Find where an episode is stored.

        Raises:
            EpisodeNotFoundError: If metadata has no entry for the episode.
        """
        ...

    async def load_rows(
        self,
        identity: DatasetIdentity,
        metadata: DatasetMetadata,
        address: EpisodeAddressV2 | EpisodeAddressV3,
        columns: list[str] | None = None,
    ) -> list[dict[str, Any]]:
        """Load the raw data rows of one episode, in frame order."""
        ...

    async def load_tasks(self, identity: DatasetIdentity) -> TaskTable:
        """Load the dataset's task table."""
        ...

    async def episode_lengths(
        self,
        identity: DatasetIdentity,
        metadata: DatasetMetadata,
    ) -> dict[int, int]:
        """Return {episode_index: length} for every episode in metadata."""
        ...
