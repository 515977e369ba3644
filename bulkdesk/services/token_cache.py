"""
Per-profile access token cache.

Tokens are refreshed lazily: a profile's entry is reused while it is
unexpired and replaced wholesale once it is not. Shared by every job,
verification and one-off request that uses the same profile.
"""

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from bulkdesk.config import settings
from bulkdesk.infrastructure.observability.logging import get_logger
from bulkdesk.models.domain.profile_domain import Profile
from bulkdesk.services.zoho_oauth_service import ZohoOAuthService

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class TokenCacheEntry:
    """One cached access token. ``expires_at`` is on the cache's clock."""

    access_token: str
    expires_at: float
    data: dict[str, Any] = field(default_factory=dict)

    def is_valid(self, now: float) -> bool:
        return bool(self.access_token) and now < self.expires_at


class TokenCache:
    """
    Lazily refreshed token store keyed by profile name.

    Refreshes for the same profile are single-flight: concurrent callers
    wait on a per-profile lock and pick up the entry the first caller wrote.
    A failed refresh leaves the cache untouched.
    """

    def __init__(
        self,
        oauth_service: ZohoOAuthService,
        *,
        safety_margin_seconds: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._oauth_service = oauth_service
        self._safety_margin = (
            settings.TOKEN_SAFETY_MARGIN_SECONDS
            if safety_margin_seconds is None
            else safety_margin_seconds
        )
        self._clock = clock
        self._entries: dict[str, TokenCacheEntry] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def _cached(self, profile_name: str) -> TokenCacheEntry | None:
        entry = self._entries.get(profile_name)
        if entry is not None and entry.is_valid(self._clock()):
            return entry
        return None

    async def get_valid_token(self, profile: Profile) -> TokenCacheEntry:
        """
        Return a usable access token for the profile, refreshing if needed.

        Raises:
            ZohoOAuthError: If the refresh exchange fails
        """
        name = profile.profile_name

        entry = self._cached(name)
        if entry is not None:
            return entry

        lock = self._locks.setdefault(name, asyncio.Lock())
        async with lock:
            # Another caller may have refreshed while we waited
            entry = self._cached(name)
            if entry is not None:
                return entry

            token_response = await self._oauth_service.refresh_access_token(profile)

            now = self._clock()
            entry = TokenCacheEntry(
                access_token=token_response.access_token,
                expires_at=now + (token_response.expires_in - self._safety_margin),
                data=token_response.raw,
            )
            self._entries[name] = entry

            logger.debug(
                "Token cached",
                profile_name=name,
                ttl_seconds=round(entry.expires_at - now, 1),
            )
            return entry

    def invalidate(self, profile_name: str) -> bool:
        """Drop a profile's cached token. Returns True if one was cached."""
        return self._entries.pop(profile_name, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
