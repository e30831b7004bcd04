"""User directory lookup used for display enrichment.

Lookups never affect tracking correctness: :class:`CachingUserDirectory`
turns every failure into a placeholder profile.
"""

from __future__ import annotations

import json
import logging
import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Any, Protocol
from urllib.parse import quote

import aiohttp
from pydantic import ValidationError

from fleettrack._redact import redact_for_log
from fleettrack.exceptions import FleetDirectoryError
from fleettrack.models.user import UNKNOWN_RIDER, UserProfile

_logger = logging.getLogger(__name__)


class UserDirectory(Protocol):
    """Structural directory interface.

    Having a protocol here makes it easy to pass test doubles while
    keeping the HTTP implementation concrete.
    """

    async def get(self, user_id: str) -> UserProfile: ...


class HttpUserDirectory:
    """Reads rider profiles from ``GET {base_url}/users/{user_id}``.

    Usage::

        async with HttpUserDirectory("https://admin.example.com/api") as directory:
            profile = await directory.get("user-1")
    """

    def __init__(
        self,
        base_url: str,
        *,
        session: aiohttp.ClientSession | None = None,
        headers: dict[str, str] | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._external_session = session is not None
        self._http = session
        self._headers = dict(headers or {})
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def __aenter__(self) -> HttpUserDirectory:
        if self._http is None:
            self._http = aiohttp.ClientSession(timeout=self._timeout)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def close(self) -> None:
        if not self._external_session and self._http is not None:
            await self._http.close()
        self._http = None

    def _require_session(self) -> aiohttp.ClientSession:
        if self._http is None:
            raise FleetDirectoryError("Directory not opened. Use 'async with HttpUserDirectory(...)'")
        return self._http

    async def get(self, user_id: str) -> UserProfile:
        http = self._require_session()
        url = f"{self._base_url}/users/{quote(user_id, safe='')}"
        _logger.debug("GET %s", url)

        try:
            async with http.get(url, headers=self._headers) as resp:
                text = await resp.text()
                if resp.status != 200:
                    raise FleetDirectoryError(
                        f"HTTP {resp.status} for user {user_id}: {text[:200]}",
                        status_code=resp.status,
                        user_id=user_id,
                    )
        except FleetDirectoryError:
            raise
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise FleetDirectoryError(f"Lookup of user {user_id} failed: {exc}", user_id=user_id) from exc

        return parse_user_profile(user_id, text)


def parse_user_profile(user_id: str, text: str) -> UserProfile:
    """Parse a directory response body.

    Accepts a bare profile object or one wrapped in ``{"data": {...}}``.
    """
    try:
        body = json.loads(text)
    except json.JSONDecodeError as exc:
        raise FleetDirectoryError(f"Invalid JSON for user {user_id}: {text[:200]}", user_id=user_id) from exc

    if isinstance(body, dict) and isinstance(body.get("data"), dict):
        body = body["data"]
    if not isinstance(body, dict):
        raise FleetDirectoryError(f"Profile for user {user_id} is not an object", user_id=user_id)

    _logger.debug("Directory profile user=%s body=%s", user_id, redact_for_log(body))
    try:
        return UserProfile.model_validate({"userId": user_id, **body})
    except ValidationError as exc:
        raise FleetDirectoryError(f"Invalid profile for user {user_id}", user_id=user_id) from exc


class CachingUserDirectory:
    """Memoising wrapper that never raises.

    Successful lookups are kept in a bounded LRU cache; failed ones return
    a placeholder profile and are not retried for ``retry_after`` seconds.

    Parameters
    ----------
    directory : UserDirectory or None
        Backend; ``None`` always yields placeholders.
    placeholder_name : str
        Display name of placeholder profiles.
    max_entries : int
        Profiles kept before the least recently used one is evicted.
    retry_after : float
        Seconds a failed user id is answered with a placeholder without
        asking the backend again.
    clock : callable
        Monotonic seconds, injectable for tests.
    """

    def __init__(
        self,
        directory: UserDirectory | None = None,
        *,
        placeholder_name: str = UNKNOWN_RIDER,
        max_entries: int = 1024,
        retry_after: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._directory = directory
        self._placeholder_name = placeholder_name
        self._max_entries = max_entries
        self._retry_after = retry_after
        self._clock = clock
        self._profiles: OrderedDict[str, UserProfile] = OrderedDict()
        self._failed_at: dict[str, float] = {}

    def placeholder(self, user_id: str) -> UserProfile:
        return UserProfile(user_id=user_id, name=self._placeholder_name, placeholder=True)

    def cached(self, user_id: str) -> UserProfile | None:
        return self._profiles.get(user_id)

    def backing_off(self, user_id: str) -> bool:
        """True while a recent failure suppresses lookups for *user_id*."""
        failed_at = self._failed_at.get(user_id)
        if failed_at is None:
            return False
        if self._clock() - failed_at < self._retry_after:
            return True
        del self._failed_at[user_id]
        return False

    def forget(self, user_id: str) -> None:
        self._profiles.pop(user_id, None)
        self._failed_at.pop(user_id, None)

    def __len__(self) -> int:
        return len(self._profiles)

    async def get(self, user_id: str) -> UserProfile:
        profile = self._profiles.get(user_id)
        if profile is not None:
            self._profiles.move_to_end(user_id)
            return profile
        if self._directory is None or self.backing_off(user_id):
            return self.placeholder(user_id)
        try:
            profile = await self._directory.get(user_id)
        except Exception:
            self._failed_at[user_id] = self._clock()
            _logger.warning(
                "User lookup failed user=%s; using placeholder for %.0fs",
                user_id,
                self._retry_after,
                exc_info=True,
            )
            return self.placeholder(user_id)
        self._profiles[user_id] = profile
        while len(self._profiles) > self._max_entries:
            evicted, _ = self._profiles.popitem(last=False)
            _logger.debug("Evicted cached profile user=%s", evicted)
        return profile
