"""Custom exceptions for Loupe.

All Loupe-specific exceptions inherit from LoupeError, allowing callers
to catch every engine failure with a single except clause if desired.
Partial data is not an error: it is reported as a PartialDataWarning and
assembly continues.
"""

from __future__ import annotations

import logging
import warnings

logger = logging.getLogger(__name__)


class LoupeError(Exception):
    """Base exception for all Loupe errors."""

    pass


class UnsupportedDatasetError(LoupeError):
    """Raised when none of the supported format versions resolves.

    Dataset listings treat this as "skip this entry".

    Attributes:
        repo_id: Dataset repository id ("org/name").
        tried_versions: Versions probed, in precedence order.
    """

    def __init__(self, repo_id: str, tried_versions: list[str] | None = None):
        self.repo_id = repo_id
        self.tried_versions = tried_versions or []

        if self.tried_versions:
            super().__init__(
                f"Dataset {repo_id} is not compatible with this viewer. "
                f"Supported versions: {', '.join(self.tried_versions)}"
            )
        else:
            super().__init__(f"Dataset {repo_id} is not compatible with this viewer")


class UnsupportedVersionError(LoupeError):
    """Raised when no layout strategy is registered for a version.

    Attributes:
        version: The requested version identifier.
        available_versions: Versions with a registered layout.
    """

    def __init__(self, version: str, available_versions: list[str] | None = None):
        self.version = version
        self.available_versions = available_versions or []

        if self.available_versions:
            super().__init__(
                f"Unsupported format version: '{version}'. "
                f"Available versions: {', '.join(self.available_versions)}"
            )
        else:
            super().__init__(f"Unsupported format version: '{version}'")


class MalformedTemplateError(LoupeError):
    """Raised when a path template cannot be rendered.

    Attributes:
        template: The offending template.
        reason: What is wrong with it.
    """

    def __init__(self, template: str, reason: str):
        self.template = template
        self.reason = reason
        super().__init__(f"Malformed path template '{template}': {reason}")


class FetchError(LoupeError):
    """Raised when the transport cannot deliver a resource.

    Attributes:
        url: The requested URL.
        status: HTTP status code, if any.
        reason: Specific reason for failure.
    """

    def __init__(self, url: str, status: int | None = None, reason: str | None = None):
        self.url = url
        self.status = status
        self.reason = reason

        detail = f"HTTP {status}" if status is not None else "request failed"
        if reason:
            detail = f"{detail} ({reason})"
        super().__init__(f"Failed to fetch {url}: {detail}")


class ResourceNotFoundError(FetchError):
    """Raised when a resource does not exist at the requested URL."""

    def __init__(self, url: str, status: int | None = 404):
        super().__init__(url, status=status, reason="not found")


class CorruptFileError(LoupeError):
    """Raised when fetched bytes are not a valid container.

    Attributes:
        url: URL the bytes came from.
        offending_bytes: The bytes found where the magic was expected.
        reason: Specific reason for failure.
    """

    def __init__(self, url: str, offending_bytes: bytes = b"", reason: str | None = None):
        self.url = url
        self.offending_bytes = offending_bytes
        self.reason = reason or "magic bytes mismatch"
        super().__init__(
            f"Corrupt file at {url}: {self.reason} (got {offending_bytes!r})"
        )


class MetadataError(LoupeError):
    """Raised when dataset metadata is present but unusable.

    Attributes:
        url: Metadata location.
        reason: Specific reason for failure.
    """

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Invalid metadata at {url}: {reason}")


class OutOfRangeError(LoupeError):
    """Raised when an episode index is outside the dataset.

    Attributes:
        episode_index: The requested index.
        total_episodes: Number of episodes in the dataset.
    """

    def __init__(self, episode_index: int, total_episodes: int):
        self.episode_index = episode_index
        self.total_episodes = total_episodes
        super().__init__(
            f"Episode {episode_index} is out of range "
            f"(dataset has {total_episodes} episodes)"
        )


class EpisodeNotFoundError(LoupeError):
    """Raised when episode metadata has no row for an episode.

    Attributes:
        episode_index: The requested episode.
        searched: Last metadata location that was searched.
    """

    def __init__(self, episode_index: int, searched: str | None = None):
        self.episode_index = episode_index
        self.searched = searched

        if searched:
            super().__init__(
                f"Episode {episode_index} not found in metadata (searched up to {searched})"
            )
        else:
            super().__init__(f"Episode {episode_index} not found in metadata")


class MissingDependencyError(LoupeError):
    """Raised when an optional dependency is not installed.

    Attributes:
        dependency: Name of the missing dependency.
        feature: Feature that requires the dependency.
        install_hint: pip install command hint.
    """

    def __init__(
        self,
        dependency: str,
        feature: str,
        install_hint: str | None = None,
    ):
        self.dependency = dependency
        self.feature = feature
        self.install_hint = install_hint or f"pip install {dependency}"

        super().__init__(
            f"Missing dependency '{dependency}' for {feature}. Install with: {self.install_hint}"
        )


class PartialDataWarning(UserWarning):
    """A non-essential field (one camera, one instruction) is missing."""


def warn_partial(message: str, sink: list[str] | None = None) -> None:
    """Log a partial-data condition, emit a warning and record it.

    Args:
        message: Human-readable description.
        sink: Optional list collecting messages for the caller.
    """
    logger.warning(message)
    warnings.warn(message, PartialDataWarning, stacklevel=3)
    if sink is not None:
        sink.append(message)
