from pathlib import Path

import pytest

from conference_room_cal.common.event_model import EventRecord
from conference_room_cal.config.loader import load_conference_config
from conference_room_cal.config.schema import ConferenceConfig

CONFIG_PATH = Path(__file__).resolve().parents[1] / "conferences" / "gpn13" / "conference.yaml"


@pytest.fixture
def config_path() -> Path:
    return CONFIG_PATH


@pytest.fixture
def config() -> ConferenceConfig:
    return load_conference_config(CONFIG_PATH)


@pytest.fixture
def events() -> list[EventRecord]:
    return [
        EventRecord(start="20130530-1723", title="Opening", place="Saal1"),
        EventRecord(start="20130530-1900", title="Lightning Talks", place="Saal2"),
        EventRecord(start="20130530-2000", title="Unplaced Meetup", place=""),
        EventRecord(start="20130531-1000", title="Keynote", speaker="Ada", place="Saal1"),
    ]
