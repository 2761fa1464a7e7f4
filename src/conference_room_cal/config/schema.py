from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, HttpUrl, ValidationError, field_validator, model_validator


class EndFallback(StrEnum):
    START = "start"
    CONFERENCE_END = "conference_end"


class LinkMode(StrEnum):
    OVERRIDE = "override"
    APPEND = "append"


class FetchErrorPolicy(StrEnum):
    RETAIN = "retain"
    EXIT = "exit"


class UnknownRoomMode(StrEnum):
    NOT_FOUND = "not_found"
    EMPTY = "empty"


class SourceConfig(BaseModel):
    url: HttpUrl
    fetch_timeout_seconds: float = 30

    @field_validator("fetch_timeout_seconds")
    @classmethod
    def _timeout_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("fetch_timeout_seconds must be > 0")
        return v


class ScheduleConfig(BaseModel):
    conference_start: datetime
    conference_end: datetime
    end_fallback: EndFallback = EndFallback.START

    @field_validator("conference_start", "conference_end")
    @classmethod
    def _naive_local(cls, v: datetime) -> datetime:
        if v.tzinfo is not None:
            raise ValueError("conference times are local times and must not carry an offset")
        return v

    @model_validator(mode="after")
    def _order(self) -> ScheduleConfig:
        if self.conference_end < self.conference_start:
            raise ValueError("conference_end cannot be before conference_start")
        return self


class IcsConfig(BaseModel):
    prodid: str = "pff"
    fold_width: int = 75
    all_key: str = "Alle"
    link_mode: LinkMode = LinkMode.OVERRIDE

    @field_validator("fold_width")
    @classmethod
    def _fold_width_range(cls, v: int) -> int:
        if not 5 <= v <= 998:
            raise ValueError("fold_width must be between 5 and 998")
        return v

    @field_validator("prodid", "all_key")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("value must be non-empty")
        return v


class ServiceConfig(BaseModel):
    refresh_interval_seconds: int = 300
    on_fetch_error: FetchErrorPolicy = FetchErrorPolicy.RETAIN
    unknown_room: UnknownRoomMode = UnknownRoomMode.NOT_FOUND
    suggestion_limit: int = 5
    fuzzy_threshold: int = 70
    index_title: str = "Fahrplaene"

    @field_validator("refresh_interval_seconds")
    @classmethod
    def _refresh_interval_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("refresh_interval_seconds must be >= 1")
        return v

    @field_validator("suggestion_limit")
    @classmethod
    def _suggestion_limit_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("suggestion_limit must be > 0")
        return v

    @field_validator("fuzzy_threshold")
    @classmethod
    def _fuzzy_threshold_range(cls, v: int) -> int:
        if not 0 <= v <= 100:
            raise ValueError("fuzzy_threshold must be between 0 and 100")
        return v


class ConferenceConfig(BaseModel):
    conference_id: str
    conference_name: str
    timezone: str
    source: SourceConfig
    schedule: ScheduleConfig
    ics: IcsConfig = Field(default_factory=IcsConfig)
    service: ServiceConfig = Field(default_factory=ServiceConfig)

    @field_validator("conference_id", "conference_name")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("value must be non-empty")
        return v

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"unknown timezone: {v}") from exc
        return v

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


def validate_config(data: dict[str, Any]) -> ConferenceConfig:
    try:
        return ConferenceConfig.model_validate(data)
    except ValidationError as exc:
        raise ValueError(f"Invalid conference config: {exc}") from exc
