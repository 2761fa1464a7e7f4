from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass, field

import requests
from pydantic import TypeAdapter, ValidationError

from conference_room_cal.common.event_model import EventRecord

logger = logging.getLogger(__name__)

_EVENTS_ADAPTER = TypeAdapter(list[EventRecord])


class ScheduleFetchError(RuntimeError):
    pass


def _sha256_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def decode_schedule(data: bytes) -> list[EventRecord]:
    """Decode a schedule payload.

    Invalid UTF-8 and unpaired surrogate escapes become U+FFFD instead of
    failing the whole schedule.
    """
    try:
        payload = json.loads(data.decode("utf-8", errors="replace"))
    except json.JSONDecodeError as exc:
        raise ScheduleFetchError(f"Invalid schedule JSON: {exc}") from exc
    try:
        return _EVENTS_ADAPTER.validate_python(payload)
    except ValidationError as exc:
        raise ScheduleFetchError(f"Invalid schedule payload: {exc}") from exc


@dataclass
class ScheduleProvider:
    """Fetch the upstream schedule, revalidating with ETag/Last-Modified.

    A ``304 Not Modified`` answer returns the events decoded from the last
    full response.
    """

    url: str
    timeout: float = 30
    session: requests.Session | None = None
    etag: str | None = field(default=None, init=False)
    last_modified: str | None = field(default=None, init=False)
    sha256: str | None = field(default=None, init=False)
    _events: list[EventRecord] | None = field(default=None, init=False, repr=False)

    def __call__(self) -> list[EventRecord]:
        return self.fetch()

    def fetch(self) -> list[EventRecord]:
        headers: dict[str, str] = {}
        if self._events is not None:
            if self.etag:
                headers["If-None-Match"] = self.etag
            if self.last_modified:
                headers["If-Modified-Since"] = self.last_modified

        getter = self.session.get if self.session is not None else requests.get
        try:
            response = getter(self.url, headers=headers, timeout=self.timeout)
            if response.status_code == 304 and self._events is not None:
                logger.debug("Schedule not modified: %s", self.url)
                return list(self._events)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise ScheduleFetchError(f"Failed to fetch {self.url}: {exc}") from exc

        data = response.content
        sha = _sha256_bytes(data)
        if sha == self.sha256 and self._events is not None:
            logger.debug("Schedule payload unchanged (sha256=%s)", sha)
            events = self._events
        else:
            events = decode_schedule(data)
            logger.info("Fetched %d events from %s (sha256=%s)", len(events), self.url, sha)

        self._events = events
        self.sha256 = sha
        self.etag = response.headers.get("ETag")
        self.last_modified = response.headers.get("Last-Modified")
        return list(events)
