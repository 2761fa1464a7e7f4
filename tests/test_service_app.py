from typing import Any

import pytest
from flask import Flask

from conference_room_cal.common.event_model import EventRecord
from conference_room_cal.common.http_fetch import ScheduleFetchError
from conference_room_cal.config.schema import ConferenceConfig, UnknownRoomMode
from conference_room_cal.service.app import create_app, log_level_from_env


def _app(config: ConferenceConfig, events: list[EventRecord], *, refresh: bool = True) -> Flask:
    app = create_app(config, provider=lambda: events, start_refresher=False)
    if refresh:
        app.config["REFRESHER"].refresh_once()
    return app


def test_room_calendar_headers(config: ConferenceConfig, events: list[EventRecord]) -> None:
    client = _app(config, events).test_client()

    response = client.get("/Saal1")

    assert response.status_code == 200
    assert response.content_type == "text/calendar"
    assert response.headers["Content-Length"] == str(len(response.data))
    assert response.data.startswith(b"BEGIN:VCALENDAR\r\n")
    assert response.data.endswith(b"END:VCALENDAR\r\n")
    assert b"LOCATION:Saal1\r\n" in response.data
    assert b"LOCATION:Saal2\r\n" not in response.data


def test_all_events_calendar(config: ConferenceConfig, events: list[EventRecord]) -> None:
    response = _app(config, events).test_client().get("/Alle")
    assert response.status_code == 200
    assert response.data.count(b"BEGIN:VEVENT") == 4


def test_ics_suffix(config: ConferenceConfig, events: list[EventRecord]) -> None:
    client = _app(config, events).test_client()
    assert client.get("/Saal1.ics").data == client.get("/Saal1").data


def test_unknown_room_not_found(config: ConferenceConfig, events: list[EventRecord]) -> None:
    response = _app(config, events).test_client().get("/Saal3")
    assert response.status_code == 404
    body: dict[str, Any] = response.get_json()
    assert body["error"] == "Room not found"
    assert "Saal1" in body["suggestions"]


def test_unknown_room_empty_mode(config: ConferenceConfig, events: list[EventRecord]) -> None:
    legacy = config.model_copy(
        update={
            "service": config.service.model_copy(update={"unknown_room": UnknownRoomMode.EMPTY})
        }
    )
    response = _app(legacy, events).test_client().get("/Saal3")
    assert response.status_code == 200
    assert response.data == b""
    assert response.content_type == "text/calendar"
    assert response.headers["Content-Length"] == "0"


def test_nothing_published_yet(config: ConferenceConfig, events: list[EventRecord]) -> None:
    client = _app(config, events, refresh=False).test_client()
    assert client.get("/Alle").status_code == 404
    assert client.get("/healthz").get_json()["ok"] is False


def test_index_lists_rooms(config: ConferenceConfig) -> None:
    events = [
        EventRecord(title="A", place="Saal1"),
        EventRecord(title="B", place="Saal 2"),
        EventRecord(title="C", place="<b>Zelt</b>"),
    ]
    response = _app(config, events).test_client().get("/")

    assert response.status_code == 200
    html = response.get_data(as_text=True)
    assert "<title>Fahrplaene</title>" in html
    assert 'href="/Alle"' in html
    assert 'href="/Saal1"' in html
    assert 'href="/Saal%202"' in html
    assert "&lt;b&gt;Zelt&lt;/b&gt;" in html
    assert "<b>Zelt</b>" not in html
    assert html.index("/Alle") < html.index("/Saal1")


def test_room_name_with_slash(config: ConferenceConfig) -> None:
    events = [EventRecord(title="A", place="Halle/Nord")]
    response = _app(config, events).test_client().get("/Halle/Nord")
    assert response.status_code == 200
    assert b"LOCATION:Halle/Nord\r\n" in response.data


def test_healthz_reports_refresh(config: ConferenceConfig, events: list[EventRecord]) -> None:
    body = _app(config, events).test_client().get("/healthz").get_json()
    assert body["ok"] is True
    assert body["generation"] == 1
    assert body["refresh"]["state"] == "idle"
    assert body["refresh"]["rooms"] == 2
    assert body["refresh"]["last_error"] is None


def test_failed_refresh_keeps_serving(config: ConferenceConfig, events: list[EventRecord]) -> None:
    results: list[Any] = [events, ScheduleFetchError("upstream down")]

    def provider() -> list[EventRecord]:
        result = results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    app = create_app(config, provider=provider, start_refresher=False)
    refresher = app.config["REFRESHER"]
    refresher.refresh_once()
    refresher.refresh_once()

    client = app.test_client()
    assert client.get("/Saal1").status_code == 200
    health = client.get("/healthz").get_json()
    assert health["ok"] is True
    assert health["refresh"]["last_error"] == "upstream down"
    assert health["refresh"]["failures"] == 1


@pytest.mark.parametrize(
    ("value", "expected"),
    [(None, "INFO"), ("debug", "DEBUG"), (" warning ", "WARNING"), ("loud", "INFO"), ("", "INFO")],
)
def test_log_level_from_env(
    value: str | None, expected: str, monkeypatch: pytest.MonkeyPatch
) -> None:
    if value is None:
        monkeypatch.delenv("LOG_LEVEL", raising=False)
    else:
        monkeypatch.setenv("LOG_LEVEL", value)
    assert log_level_from_env() == expected


def test_create_app_with_unknown_log_level(
    config: ConferenceConfig, events: list[EventRecord], monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("LOG_LEVEL", "loud")
    app = _app(config, events)
    assert app.test_client().get("/healthz").status_code == 200
