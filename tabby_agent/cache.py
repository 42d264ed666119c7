"""
Short-lived cache of completion responses.

Entries are keyed by a fingerprint of the request and evicted by both
age (TTL) and capacity (least recently used first).
"""

from __future__ import annotations

import base64
import hashlib
import json
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Optional

from tabby_agent.types import CompletionRequest, CompletionResponse

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 10000
DEFAULT_TTL_SECONDS = 10 * 60.0


def compute_fingerprint(request: CompletionRequest) -> str:
    """
    Compute a deterministic fingerprint of a completion request.

    Canonicalization rules:
    1. JSON object of text, position and language with sorted keys
    2. Compact JSON (no whitespace)
    3. SHA-256 hash
    4. Base64url encode (no padding)

    Returns:
        String in format "sha256:<base64url>"
    """
    canonical = json.dumps(
        {"text": request.text, "position": request.position, "language": request.language},
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=True,
    )
    digest = hashlib.sha256(canonical.encode("utf-8")).digest()
    b64 = base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
    return f"sha256:{b64}"


@dataclass
class CacheEntry:
    """A cached response and the monotonic time it expires at."""
    response: CompletionResponse
    expires_at: float


class CompletionCache:
    """
    Bounded, most-recent-wins mapping from request fingerprint to response.

    Args:
        max_entries: Capacity; the least recently used entry is evicted
            when exceeded
        ttl: Entry lifetime in seconds
        clock: Monotonic time source (injectable for tests)
    """

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries <= 0:
            raise ValueError(f"max_entries must be positive, got {max_entries}")
        if ttl <= 0:
            raise ValueError(f"ttl must be positive, got {ttl}")
        self.max_entries = max_entries
        self.ttl = ttl
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()

    def get(self, request: CompletionRequest) -> Optional[CompletionResponse]:
        """Return the cached response, or None on miss or expiry."""
        key = compute_fingerprint(request)
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return entry.response

    def has(self, request: CompletionRequest) -> bool:
        return self.get(request) is not None

    def set(self, request: CompletionRequest, response: CompletionResponse) -> None:
        """Store response, replacing any previous entry for the same request."""
        key = compute_fingerprint(request)
        self._entries[key] = CacheEntry(response=response, expires_at=self._clock() + self.ttl)
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug(f"Evicted completion cache entry {evicted}")

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
