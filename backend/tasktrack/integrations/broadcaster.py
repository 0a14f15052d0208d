"""Keyed realtime publishing.

Live-state channels (``cards/{id}``, ``projects/{id}``) keep only the latest
payload per event name: publishing overwrites. History channels
(``users/{id}/notifications``) append.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Protocol
from uuid import uuid4

import httpx

from tasktrack.core.config import settings
from tasktrack.core.logging import get_logger
from tasktrack.core.time import isoformat, utcnow

logger = get_logger(__name__)


def card_channel(card_id: int) -> str:
    return f"cards/{card_id}"


def project_channel(project_id: int) -> str:
    return f"projects/{project_id}"


def user_channel(user_id: int) -> str:
    return f"users/{user_id}/notifications"


def stamp_payload(payload: dict[str, Any], *, user_id: int | None) -> dict[str, Any]:
    """Add the acting user, a timestamp and a nonce so repeated events still differ."""
    return {
        **payload,
        "userId": user_id,
        "timestamp": isoformat(utcnow()),
        "_nonce": uuid4().hex[:8],
    }


class EventBroadcaster(Protocol):
    def publish(self, channel: str, event: str, payload: dict[str, Any]) -> None: ...

    def append(self, channel: str, event: str, payload: dict[str, Any]) -> None: ...


@dataclass(frozen=True, slots=True)
class LiveEvent:
    version: int
    event: str
    payload: dict[str, Any]


class InMemoryBroadcaster:
    """Process-local broadcaster backing the SSE stream endpoints."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._version = 0
        self._live: dict[str, dict[str, LiveEvent]] = {}
        self._history: dict[str, dict[str, list[dict[str, Any]]]] = {}

    def publish(self, channel: str, event: str, payload: dict[str, Any]) -> None:
        with self._lock:
            self._version += 1
            self._live.setdefault(channel, {})[event] = LiveEvent(self._version, event, payload)

    def append(self, channel: str, event: str, payload: dict[str, Any]) -> None:
        with self._lock:
            self._version += 1
            self._history.setdefault(channel, {}).setdefault(event, []).append(payload)

    def latest(self, channel: str, event: str) -> dict[str, Any] | None:
        with self._lock:
            entry = self._live.get(channel, {}).get(event)
        return entry.payload if entry else None

    def history(self, channel: str, event: str) -> list[dict[str, Any]]:
        with self._lock:
            return list(self._history.get(channel, {}).get(event, []))

    def changes_since(self, channel: str, version: int) -> list[LiveEvent]:
        with self._lock:
            entries = list(self._live.get(channel, {}).values())
        return sorted((e for e in entries if e.version > version), key=lambda e: e.version)

    @property
    def version(self) -> int:
        with self._lock:
            return self._version


class HttpBroadcaster:
    """Publishes to a REST realtime store: PUT overwrites a key, POST appends a child."""

    def __init__(self, base_url: str, token: str, *, client: httpx.Client | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self._client = client or httpx.Client(
            timeout=httpx.Timeout(5.0, connect=3.0),
            headers={"User-Agent": "tasktrack/1.0"},
        )

    def _url(self, channel: str, event: str) -> str:
        return f"{self.base_url}/{channel}/{event}.json"

    def _params(self) -> dict[str, str]:
        return {"auth": self.token} if self.token else {}

    def publish(self, channel: str, event: str, payload: dict[str, Any]) -> None:
        resp = self._client.put(self._url(channel, event), params=self._params(), json=payload)
        resp.raise_for_status()
        logger.debug("realtime.published channel=%s event=%s", channel, event)

    def append(self, channel: str, event: str, payload: dict[str, Any]) -> None:
        resp = self._client.post(self._url(channel, event), params=self._params(), json=payload)
        resp.raise_for_status()
        logger.debug("realtime.appended channel=%s event=%s", channel, event)

    def close(self) -> None:
        self._client.close()


_local = InMemoryBroadcaster()


def local_broadcaster() -> InMemoryBroadcaster:
    return _local


@lru_cache(maxsize=4)
def _http_broadcaster(url: str, token: str) -> HttpBroadcaster:
    return HttpBroadcaster(url, token)


def build_broadcaster() -> EventBroadcaster:
    if settings.realtime_url:
        return _http_broadcaster(settings.realtime_url, settings.realtime_token)
    return _local
