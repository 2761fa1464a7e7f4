from __future__ import annotations

import logging
import os
import threading
import time
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from conference_room_cal.common.event_model import EventRecord
from conference_room_cal.common.http_fetch import ScheduleFetchError
from conference_room_cal.common.ics import RenderContext, build_ics
from conference_room_cal.config.schema import ConferenceConfig
from conference_room_cal.service.cache import DocumentCache

logger = logging.getLogger(__name__)

Provider = Callable[[], Iterable[EventRecord]]


class RefreshState(StrEnum):
    IDLE = "idle"
    FETCHING = "fetching"
    GROUPING = "grouping"
    RENDERING = "rendering"
    PUBLISHING = "publishing"


def group_by_room(
    events: Iterable[EventRecord], all_key: str | None = None
) -> dict[str, list[EventRecord]]:
    """Partition events by place, in first-seen order.

    Unplaced events are left out, as is a room named like the all-events
    document, which would otherwise shadow it.
    """
    rooms: dict[str, list[EventRecord]] = {}
    shadowing = 0
    for event in events:
        if not event.place:
            continue
        if event.place == all_key:
            shadowing += 1
            continue
        rooms.setdefault(event.place, []).append(event)
    if shadowing:
        logger.warning(
            "Skipped %d events placed in room %r, which is reserved for all events",
            shadowing,
            all_key,
        )
    return rooms


def render_documents(
    events: Sequence[EventRecord],
    rooms: Mapping[str, Sequence[EventRecord]],
    context: RenderContext,
    all_key: str,
    now: datetime | None = None,
) -> dict[str, bytes]:
    now = now or datetime.now(UTC)
    documents = {all_key: build_ics(events, context, now)}
    for room, room_events in rooms.items():
        documents[room] = build_ics(room_events, context, now)
    return documents


def build_render_context(config: ConferenceConfig) -> RenderContext:
    tz = config.tz
    return RenderContext(
        timezone=tz,
        conference_start=config.schedule.conference_start.replace(tzinfo=tz),
        conference_end=config.schedule.conference_end.replace(tzinfo=tz),
        end_fallback=config.schedule.end_fallback.value,
        link_mode=config.ics.link_mode.value,
        prodid=config.ics.prodid,
        fold_width=config.ics.fold_width,
    )


def _terminate(status: int) -> None:
    logging.shutdown()
    os._exit(status)


@dataclass(frozen=True)
class RefreshHealth:
    state: RefreshState = RefreshState.IDLE
    cycles: int = 0
    failures: int = 0
    last_attempt: datetime | None = None
    last_success: datetime | None = None
    last_error: str | None = None
    rooms: int = 0
    events: int = 0

    def as_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "cycles": self.cycles,
            "failures": self.failures,
            "last_attempt": self.last_attempt.isoformat() if self.last_attempt else None,
            "last_success": self.last_success.isoformat() if self.last_success else None,
            "last_error": self.last_error,
            "rooms": self.rooms,
            "events": self.events,
        }


class ScheduleRefresher:
    """Runs fetch, group, render and publish on a fixed interval.

    The first cycle starts as soon as ``start()`` is called. A failed fetch
    either keeps the published snapshot (``retain``) or ends the process
    (``exit``).
    """

    def __init__(
        self,
        provider: Provider,
        cache: DocumentCache,
        context: RenderContext,
        *,
        all_key: str = "Alle",
        interval_seconds: float = 300,
        on_fetch_error: str = "retain",
        exit_process: Callable[[int], Any] = _terminate,
    ) -> None:
        if on_fetch_error not in {"retain", "exit"}:
            raise ValueError(f"Unknown fetch error policy: {on_fetch_error}")
        self.provider = provider
        self.cache = cache
        self.context = context
        self.all_key = all_key
        self.interval_seconds = interval_seconds
        self.on_fetch_error = on_fetch_error
        self._exit_process = exit_process
        self._health = RefreshHealth()
        self._cycle_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def health(self) -> RefreshHealth:
        return self._health

    def _update(self, **changes: Any) -> None:
        self._health = replace(self._health, **changes)

    def refresh_once(self) -> bool:
        with self._cycle_lock:
            try:
                return self._cycle()
            except Exception as exc:
                self._update(failures=self._health.failures + 1, last_error=str(exc))
                raise
            finally:
                self._update(state=RefreshState.IDLE)

    def _cycle(self) -> bool:
        self._update(
            state=RefreshState.FETCHING,
            cycles=self._health.cycles + 1,
            last_attempt=datetime.now(UTC),
        )
        try:
            events = list(self.provider())
        except ScheduleFetchError as exc:
            self._update(failures=self._health.failures + 1, last_error=str(exc))
            if self.on_fetch_error == "exit":
                logger.critical("Schedule fetch failed; exiting: %s", exc)
                self._exit_process(1)
                return False
            logger.error(
                "Schedule fetch failed; keeping snapshot generation %d: %s",
                self.cache.snapshot().generation,
                exc,
            )
            return False

        self._update(state=RefreshState.GROUPING)
        rooms = group_by_room(events, self.all_key)

        self._update(state=RefreshState.RENDERING)
        documents = render_documents(events, rooms, self.context, self.all_key)

        self._update(state=RefreshState.PUBLISHING)
        snapshot = self.cache.publish(documents, self.all_key)
        self._update(
            last_success=snapshot.published_at,
            last_error=None,
            rooms=len(rooms),
            events=len(events),
        )
        logger.info(
            "Published snapshot generation %d: %d events in %d rooms",
            snapshot.generation,
            len(events),
            len(rooms),
        )
        return True

    def start(self) -> threading.Thread:
        if self._thread is not None and self._thread.is_alive():
            return self._thread
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, name="schedule-refresher", daemon=True
        )
        self._thread.start()
        return self._thread

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _run(self) -> None:
        next_run = time.monotonic()
        while not self._stop.is_set():
            try:
                self.refresh_once()
            except Exception:
                logger.exception("Refresh cycle failed unexpectedly")
            next_run = max(next_run + self.interval_seconds, time.monotonic())
            if self._stop.wait(max(0.0, next_run - time.monotonic())):
                break
