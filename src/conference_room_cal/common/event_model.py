from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

_LONE_SURROGATE = re.compile(r"[\ud800-\udfff]")


def _key(name: str) -> str:
    return name.replace("_", "").lower()


class EventRecord(BaseModel):
    """One entry of the upstream schedule JSON.

    Upstream keys are capitalized (``Start``, ``LongDesc``) and have been
    spelled ``Long_desc`` in older feeds, so keys are matched ignoring case
    and underscores.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    confirmed: str = ""
    start: str = ""
    end: str = ""
    type: str = ""
    title: str = ""
    speaker: str = ""
    affiliation: str = ""
    desc: str = ""
    long_desc: str = ""
    link: str = ""
    place: str = ""

    @model_validator(mode="before")
    @classmethod
    def _match_keys(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        lookup = {_key(name): name for name in cls.model_fields}
        matched: dict[str, Any] = {}
        for raw_key, value in data.items():
            name = lookup.get(_key(str(raw_key)))
            if name is not None:
                matched[name] = value
        return matched

    @field_validator("*", mode="before")
    @classmethod
    def _as_text(cls, v: Any) -> str:
        if v is None:
            return ""
        if isinstance(v, bool):
            return "true" if v else "false"
        if isinstance(v, (int, float)):
            return str(v)
        if isinstance(v, str):
            return _LONE_SURROGATE.sub("\ufffd", v)
        return v
