"""Default HTTP transport over the HuggingFace Hub session.

Uses huggingface_hub's shared HTTP session for:
- Connection reuse across requests
- The Hub's standard user agent and request hooks

Blocking requests run in a worker thread so the engine stays on asyncio.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from loupe.core.exceptions import FetchError, MissingDependencyError, ResourceNotFoundError

logger = logging.getLogger(__name__)


def _check_huggingface_hub() -> None:
    """Check if huggingface_hub is available."""
    try:
        import huggingface_hub  # noqa: F401
    except ImportError:
        raise MissingDependencyError(
            dependency="huggingface_hub",
            feature="HuggingFace Hub transport",
            install_hint="pip install huggingface_hub",
        )


class HubTransport:
    """Fetches dataset files over HTTP.

    Attaches "Authorization: Bearer <token>" when a token is supplied;
    no other authentication logic is performed.

    Usage:
        transport = HubTransport(token=os.environ.get("HF_TOKEN"))
        data = await transport.fetch(url)
    """

    def __init__(self, token: str | None = None, timeout: float = 10.0, session: Any = None):
        """Initialize the transport.

        Args:
            token: Optional bearer token.
            timeout: Per-request timeout in seconds.
            session: HTTP session to use. Defaults to huggingface_hub's.
        """
        if session is None:
            _check_huggingface_hub()
            from huggingface_hub import get_session

            session = get_session()

        self._session = session
        self._timeout = timeout
        self._headers = {"Authorization": f"Bearer {token}"} if token else {}

    def _get(self, url: str) -> bytes:
        try:
            response = self._session.get(url, headers=self._headers, timeout=self._timeout)
        except Exception as e:
            raise FetchError(url, reason=str(e)) from e

        if response.status_code == 404:
            raise ResourceNotFoundError(url)
        if response.status_code >= 400:
            raise FetchError(url, status=response.status_code)
        return response.content

    def _head(self, url: str) -> bool:
        try:
            response = self._session.head(url, headers=self._headers, timeout=self._timeout)
        except Exception as e:
            logger.debug(f"HEAD {url} failed: {e}")
            return False
        return response.status_code < 400

    async def fetch(self, url: str) -> bytes:
        """Fetch a resource body.

        Raises:
            ResourceNotFoundError: On HTTP 404.
            FetchError: On other HTTP errors or connection failures.
        """
        logger.debug(f"GET {url}")
        return await asyncio.to_thread(self._get, url)

    async def exists(self, url: str) -> bool:
        """Check a resource with a HEAD request (redirects count as present)."""
        logger.debug(f"HEAD {url}")
        return await asyncio.to_thread(self._head, url)
