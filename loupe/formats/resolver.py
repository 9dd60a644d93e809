"""Format version resolution.

A dataset repository exposes one revision per format version it was
converted to. Versions are probed in a fixed precedence order and the first
whose metadata is usable wins; the answer is cached for the session.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from loupe.core.exceptions import (
    FetchError,
    LoupeError,
    MetadataError,
    UnsupportedDatasetError,
)
from loupe.core.models import RESOLUTION_ORDER, DatasetIdentity, DatasetMetadata, FormatVersion
from loupe.formats.paths import V3_EPISODES_PATH

if TYPE_CHECKING:
    from loupe.session import EngineContext

logger = logging.getLogger(__name__)

INFO_PATH = "meta/info.json"


class VersionResolver:
    """Determines which format version a dataset is stored in.

    Usage:
        resolver = VersionResolver(ctx)
        version = await resolver.resolve(DatasetIdentity.parse("lerobot/pusht"))
    """

    def __init__(self, ctx: EngineContext):
        self._ctx = ctx

    async def resolve(self, identity: DatasetIdentity) -> FormatVersion:
        """Resolve the format version.

        Raises:
            UnsupportedDatasetError: If no supported version resolves.
        """
        version, _ = await self.resolve_with_metadata(identity)
        return version

    async def resolve_with_metadata(
        self, identity: DatasetIdentity
    ) -> tuple[FormatVersion, DatasetMetadata]:
        """Resolve the version together with its parsed metadata.

        Both successes and UnsupportedDatasetError are cached per identity.
        """
        return await self._ctx.cache.versions.get_or_create(
            identity.repo_id, lambda: self._probe_all(identity)
        )

    async def _probe_all(self, identity: DatasetIdentity) -> tuple[FormatVersion, DatasetMetadata]:
        for version in RESOLUTION_ORDER:
            metadata = await self._probe(identity, version)
            if metadata is not None:
                logger.info(f"Resolved {identity.repo_id} as {version.value}")
                return version, metadata
        raise UnsupportedDatasetError(
            identity.repo_id, tried_versions=[v.value for v in RESOLUTION_ORDER]
        )

    async def _probe(
        self, identity: DatasetIdentity, version: FormatVersion
    ) -> DatasetMetadata | None:
        url = self._ctx.url(identity, version, INFO_PATH)
        try:
            document = await self._ctx.fetch_json(url)
        except (FetchError, MetadataError) as e:
            logger.debug(f"Probe {version.value} for {identity.repo_id} failed: {e}")
            return None

        if not isinstance(document, dict):
            logger.debug(f"Probe {version.value}: info.json is not an object")
            return None
        features = document.get("features")
        if not isinstance(features, dict) or not features:
            logger.debug(f"Probe {version.value}: info.json has no features")
            return None

        if version.is_v3:
            episodes_path = self._ctx.formatter.format(
                V3_EPISODES_PATH, {"chunk_index": 0, "file_index": 0}
            )
            if not await self._ctx.exists(self._ctx.url(identity, version, episodes_path)):
                logger.debug(f"Probe v3.0 for {identity.repo_id}: no episodes metadata")
                return None

        return DatasetMetadata.from_dict(document)

    async def filter_supported(
        self, identities: list[DatasetIdentity]
    ) -> list[tuple[DatasetIdentity, FormatVersion]]:
        """Resolve many datasets concurrently, skipping unsupported ones.

        Args:
            identities: Datasets to check.

        Returns:
            (identity, version) pairs for supported datasets, in input order.
        """
        results = await asyncio.gather(
            *(self.resolve(identity) for identity in identities),
            return_exceptions=True,
        )
        supported = []
        for identity, result in zip(identities, results):
            if isinstance(result, FormatVersion):
                supported.append((identity, result))
            elif isinstance(result, LoupeError):
                logger.info(f"Skipping {identity.repo_id}: {result}")
            else:
                raise result
        return supported
