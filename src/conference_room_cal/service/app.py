from __future__ import annotations

import logging
import os
from typing import Any

from flask import Flask, Response, jsonify, render_template_string
from rapidfuzz import process

from conference_room_cal.common.http_fetch import ScheduleProvider
from conference_room_cal.config.loader import load_from_env
from conference_room_cal.config.schema import ConferenceConfig, UnknownRoomMode
from conference_room_cal.service.cache import DocumentCache
from conference_room_cal.service.refresh import (
    Provider,
    ScheduleRefresher,
    build_render_context,
)

logger = logging.getLogger(__name__)

ICS_CONTENT_TYPE = "text/calendar"
ICS_SUFFIX = ".ics"

INDEX_TEMPLATE = """<!doctype html>
<html>
<head>
<title>{{ title }}</title>
</head>
<body>
{% for room in rooms %}
<a href="{{ url_for('room_calendar', room=room) }}">{{ room }}</a><br/>
{% endfor %}
</body>
</html>
"""


def log_level_from_env(default: str = "INFO") -> str:
    """Return $LOG_LEVEL if it names a logging level, else ``default``."""
    value = os.getenv("LOG_LEVEL", default).strip().upper()
    if value not in logging.getLevelNamesMapping():
        logger.warning("Ignoring unknown LOG_LEVEL %r, using %s", value, default)
        return default
    return value


def build_refresher(
    config: ConferenceConfig, cache: DocumentCache, provider: Provider | None = None
) -> ScheduleRefresher:
    if provider is None:
        provider = ScheduleProvider(
            str(config.source.url), timeout=config.source.fetch_timeout_seconds
        )
    return ScheduleRefresher(
        provider,
        cache,
        build_render_context(config),
        all_key=config.ics.all_key,
        interval_seconds=config.service.refresh_interval_seconds,
        on_fetch_error=config.service.on_fetch_error.value,
    )


def create_app(
    config: ConferenceConfig | None = None,
    *,
    provider: Provider | None = None,
    start_refresher: bool = True,
) -> Flask:
    logging.basicConfig(level=log_level_from_env(), format="%(levelname)s %(message)s")
    if config is None:
        config = load_from_env()

    cache = DocumentCache()
    refresher = build_refresher(config, cache, provider)

    app = Flask(__name__)
    app.config["CONFERENCE_CONFIG"] = config
    app.config["DOCUMENT_CACHE"] = cache
    app.config["REFRESHER"] = refresher

    @app.get("/healthz")
    def healthz() -> Any:
        snapshot = cache.snapshot()
        return jsonify(
            {
                "ok": snapshot.generation > 0,
                "generation": snapshot.generation,
                "published_at": (
                    snapshot.published_at.isoformat() if snapshot.published_at else None
                ),
                "refresh": refresher.health.as_dict(),
            }
        )

    @app.get("/")
    def index() -> Any:
        return render_template_string(
            INDEX_TEMPLATE, title=config.service.index_title, rooms=cache.rooms()
        )

    @app.get("/<path:room>")
    def room_calendar(room: str) -> Any:
        snapshot = cache.snapshot()
        document = snapshot.documents.get(room)
        if document is None and room.endswith(ICS_SUFFIX):
            document = snapshot.documents.get(room[: -len(ICS_SUFFIX)])

        if document is None:
            logger.debug("Unknown room requested: %s", room)
            if config.service.unknown_room == UnknownRoomMode.EMPTY:
                return _calendar_response(b"")
            suggestions = _room_suggestions(
                room,
                snapshot.rooms(),
                config.service.suggestion_limit,
                config.service.fuzzy_threshold,
            )
            return jsonify({"error": "Room not found", "suggestions": suggestions}), 404

        logger.debug("Serving calendar for %s (%d bytes)", room, len(document))
        return _calendar_response(document)

    if start_refresher:
        refresher.start()
    return app


def _calendar_response(document: bytes) -> Response:
    response = Response(document, status=200, content_type=ICS_CONTENT_TYPE)
    response.headers["Content-Length"] = str(len(document))
    return response


def _room_suggestions(
    query: str, rooms: list[str], limit: int, score_cutoff: int
) -> list[str]:
    if not query or not rooms:
        return []
    results = process.extract(query, rooms, score_cutoff=score_cutoff, limit=limit)
    return [match[0] for match in results]
