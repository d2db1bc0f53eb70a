from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

import base58

from .interfaces import IdentityLookup

__all__ = [
    "IDENTITY_REQUIRED",
    "IDENTITY_UNAVAILABLE",
    "INVALID_IDENTITY",
    "NOT_BONDED",
    "IdentityResolver",
    "Resolution",
    "ResolutionStatus",
    "is_well_formed",
]

logger = logging.getLogger(__name__)

IDENTITY_REQUIRED = "Please enter a valid identity key"
INVALID_IDENTITY = "Identity key is not a valid node identity"
NOT_BONDED = "Node with this identity does not seem to be currently bonded"
IDENTITY_UNAVAILABLE = "Could not verify this identity key right now"


class ResolutionStatus(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    RESOLVED = "resolved"
    NOT_FOUND = "not_found"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class Resolution:
    identity_key: str
    status: ResolutionStatus
    node_id: int | None = None
    reason: str | None = None


def is_well_formed(identity_key: str, key_bytes: int = 32) -> bool:
    """Return True when ``identity_key`` is base58 text decoding to ``key_bytes`` bytes."""

    if not identity_key or identity_key != identity_key.strip():
        return False
    try:
        decoded = base58.b58decode(identity_key)
    except ValueError:
        return False
    return len(decoded) == key_bytes


class IdentityResolver:
    """Maps free-text identity keys to node ids through an :class:`IdentityLookup`.

    Malformed keys never reach the lookup. Transport errors are reported as
    ``UNAVAILABLE`` rather than ``NOT_FOUND`` so callers can tell a missing node
    from a flaky network.
    """

    def __init__(self, lookup: IdentityLookup, *, key_bytes: int = 32) -> None:
        self._lookup = lookup
        self.key_bytes = key_bytes

    def is_well_formed(self, identity_key: str) -> bool:
        return is_well_formed(identity_key, self.key_bytes)

    async def resolve(self, identity_key: str) -> Resolution:
        if not self.is_well_formed(identity_key):
            return Resolution(identity_key, ResolutionStatus.IDLE, reason=INVALID_IDENTITY)
        try:
            node_id = await self._lookup.resolve_identity(identity_key)
        except Exception as exc:
            logger.warning("Failed to resolve node id for %r: %s", identity_key, exc)
            return Resolution(identity_key, ResolutionStatus.UNAVAILABLE, reason=str(exc) or type(exc).__name__)
        if node_id is None:
            return Resolution(identity_key, ResolutionStatus.NOT_FOUND)
        if isinstance(node_id, bool) or not isinstance(node_id, int) or node_id <= 0:
            logger.warning("Lookup returned unusable node id %r for %r", node_id, identity_key)
            return Resolution(identity_key, ResolutionStatus.UNAVAILABLE, reason="invalid node id")
        return Resolution(identity_key, ResolutionStatus.RESOLVED, node_id=node_id)
