from __future__ import annotations

import logging
import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from conference_room_cal.config.schema import ConferenceConfig, validate_config

logger = logging.getLogger(__name__)

CONFIG_FILENAMES = ("conference.yaml", "conference.yml")
CONFERENCE_ID_PATTERN = re.compile(r"[A-Za-z0-9][A-Za-z0-9_.-]*")

# Environment variable -> (section, key) in the YAML document.
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "CONFERENCE_SOURCE_URL": ("source", "url"),
    "CONFERENCE_FETCH_TIMEOUT_SECONDS": ("source", "fetch_timeout_seconds"),
    "CONFERENCE_REFRESH_INTERVAL_SECONDS": ("service", "refresh_interval_seconds"),
    "CONFERENCE_ON_FETCH_ERROR": ("service", "on_fetch_error"),
    "CONFERENCE_UNKNOWN_ROOM": ("service", "unknown_room"),
}


def _load_yaml(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file must be a mapping: {path}")
    return data


def resolve_config_path(
    conference_id: str | None = None, config_path: str | None = None
) -> Path:
    if config_path:
        return Path(config_path).expanduser().resolve()
    if not conference_id:
        raise ValueError("Either CONFERENCE_ID or CONFERENCE_CONFIG_PATH must be provided")
    if not CONFERENCE_ID_PATTERN.fullmatch(conference_id):
        raise ValueError(f"Invalid conference id: {conference_id!r}")
    conference_dir = Path.cwd() / "conferences" / conference_id
    for filename in CONFIG_FILENAMES:
        candidate = conference_dir / filename
        if candidate.exists():
            return candidate.resolve()
    return (conference_dir / CONFIG_FILENAMES[0]).resolve()


def apply_env_overrides(data: dict[str, Any], environ: Mapping[str, str]) -> dict[str, Any]:
    """Return a copy of ``data`` with deployment settings taken from the environment.

    Values stay strings; the schema coerces them.
    """
    updated = dict(data)
    for var, (section, key) in ENV_OVERRIDES.items():
        value = environ.get(var)
        if not value:
            continue
        current = updated.get(section) or {}
        if not isinstance(current, dict):
            raise ValueError(f"Config section {section!r} must be a mapping")
        updated[section] = {**current, key: value}
        logger.info("Config override from %s: %s.%s", var, section, key)
    return updated


def load_conference_config(
    config_path: Path, environ: Mapping[str, str] | None = None
) -> ConferenceConfig:
    data = _load_yaml(config_path)
    if environ is not None:
        data = apply_env_overrides(data, environ)
    return validate_config(data)


def load_from_env() -> ConferenceConfig:
    conference_id = os.getenv("CONFERENCE_ID")
    config_path = os.getenv("CONFERENCE_CONFIG_PATH")
    path = resolve_config_path(conference_id=conference_id, config_path=config_path)
    config = load_conference_config(path, os.environ)
    if conference_id and not config_path and config.conference_id != conference_id:
        raise ValueError(
            f"{path} declares conference_id {config.conference_id!r}, expected {conference_id!r}"
        )
    return config
