"""HuggingFace Hub integration for Loupe.

This module provides dataset reference parsing, versioned URL building and
the default HTTP transport.

Usage:
    from loupe.hub import HubTransport, parse_hf_url

    ref = parse_hf_url("hf://lerobot/pusht")
    transport = HubTransport(token="hf_...")
"""

from loupe.hub.transport import HubTransport
from loupe.hub.url import (
    HFDatasetRef,
    build_versioned_url,
    coerce_identity,
    is_hf_url,
    parse_hf_url,
)

__all__ = [
    "HFDatasetRef",
    "HubTransport",
    "build_versioned_url",
    "coerce_identity",
    "is_hf_url",
    "parse_hf_url",
]
