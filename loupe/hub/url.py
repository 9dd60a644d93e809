"""URL utilities for remotely hosted datasets.

Supports various dataset references:
    lerobot/pusht
    hf://lerobot/pusht
    hf://lerobot/pusht@main
    huggingface://lerobot/pusht
    https://huggingface.co/datasets/lerobot/pusht

and builds versioned resource URLs of the form
    {base}/{org}/{name}/resolve/{version}/{path}
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from loupe.config.models import DEFAULT_DATASET_URL
from loupe.core.models import DatasetIdentity, FormatVersion


@dataclass
class HFDatasetRef:
    """Reference to a hosted dataset."""

    identity: DatasetIdentity
    revision: str | None = None  # Branch/tag/commit

    @property
    def repo_id(self) -> str:
        return self.identity.repo_id


def is_hf_url(path: str) -> bool:
    """Check if the path is a HuggingFace URL.

    Args:
        path: Path or URL to check.

    Returns:
        True if this is a HuggingFace URL.
    """
    if not isinstance(path, str):
        return False

    if path.startswith(("hf://", "huggingface://")):
        return True

    return "huggingface.co/datasets/" in path


def parse_hf_url(url: str) -> HFDatasetRef:
    """Parse a dataset reference into identity and revision.

    Supported formats:
        org/dataset
        hf://org/dataset
        hf://org/dataset@revision
        huggingface://org/dataset
        https://huggingface.co/datasets/org/dataset

    Args:
        url: Dataset URL or plain "org/dataset" id.

    Returns:
        HFDatasetRef with parsed components.

    Raises:
        ValueError: If the reference is invalid.
    """
    original_url = url

    if "huggingface.co/datasets/" in url:
        match = re.search(r"huggingface\.co/datasets/([^/]+/[^/?#]+)", url)
        if match:
            return HFDatasetRef(identity=DatasetIdentity.parse(match.group(1).rstrip("/")))
        raise ValueError(f"Invalid HuggingFace URL: {original_url}")

    if url.startswith("hf://"):
        url = url[5:]
    elif url.startswith("huggingface://"):
        url = url[14:]
    elif "://" in url:
        raise ValueError(f"Invalid HuggingFace URL scheme: {original_url}")

    revision = None
    if "@" in url:
        url, revision = url.rsplit("@", 1)

    return HFDatasetRef(identity=DatasetIdentity.parse(url), revision=revision or None)


def coerce_identity(source: str | DatasetIdentity) -> DatasetIdentity:
    """Accept a DatasetIdentity or any string form parse_hf_url understands.

    Raises:
        ValueError: If the reference pins a revision. Files are always read
            from the format version branches (v3.0, v2.1, v2.0).
    """
    if isinstance(source, DatasetIdentity):
        return source
    ref = parse_hf_url(source)
    if ref.revision is not None:
        raise ValueError(
            f"Revision '@{ref.revision}' is not supported for {ref.identity.repo_id}; "
            "datasets are resolved by format version"
        )
    return ref.identity


def build_versioned_url(
    identity: DatasetIdentity,
    version: FormatVersion | str,
    path: str,
    base_url: str = DEFAULT_DATASET_URL,
) -> str:
    """Build the URL of a file inside a dataset at a given revision.

    Args:
        identity: Dataset identity.
        version: Format version (its tag is used as the revision).
        path: Path relative to the dataset root.
        base_url: Dataset host base URL.

    Returns:
        Absolute URL.
    """
    revision = version.value if isinstance(version, FormatVersion) else version
    return f"{base_url.rstrip('/')}/{identity.repo_id}/resolve/{revision}/{path.lstrip('/')}"
