"""
Switch models - per-switch rules and the derived switch state.

SwitchRule is owned by the device/UI layer and is read-only to the
evaluation engine. SwitchState is recomputed on every evaluation and is
always replaced as a whole.
"""

import re
from datetime import datetime
from enum import Enum
from typing import Any, FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from calswitch.models.connection import Provider
from calswitch.models.event import NormalizedEvent


_WORD_SPLIT = re.compile(r"[\n,]+")


def parse_words(raw: Any) -> FrozenSet[str]:
    """
    Normalize keyword input into a set of case-folded words.

    Accepts None, a comma/newline separated string, or any iterable of
    strings. Words are trimmed and lower-cased; empty words are dropped.
    """
    if raw is None:
        return frozenset()
    if isinstance(raw, str):
        items = _WORD_SPLIT.split(raw)
    else:
        items = [str(item) for item in raw]
    return frozenset(w.strip().lower() for w in items if w and w.strip())


class SwitchRule(BaseModel):
    """Match rules for one switch."""

    model_config = ConfigDict(frozen=True)

    switch_id: str
    label: str = ""
    provider: Provider

    include_words: FrozenSet[str] = Field(default_factory=frozenset)
    exclude_words: FrozenSet[str] = Field(default_factory=frozenset)

    minutes_before_start: int = Field(0, ge=0)
    minutes_after_end: int = Field(0, ge=0)

    only_busy: bool = True
    allow_all_day: bool = False
    allow_private: bool = True

    @field_validator("include_words", "exclude_words", mode="before")
    @classmethod
    def _normalize_words(cls, value: Any) -> FrozenSet[str]:
        return parse_words(value)


class SwitchStatus(str, Enum):
    """Per-switch state machine positions."""

    UNCONFIGURED = "unconfigured"
    CONNECTED = "connected"
    ACTIVE = "active"
    IDLE = "idle"
    ERROR = "error"


class UpcomingEntry(BaseModel):
    """An event the switch will turn on for, with its expected on/off times."""

    model_config = ConfigDict(frozen=True)

    event_id: str
    title: str
    provider: Provider
    start_time: datetime
    end_time: datetime
    window_start: datetime
    window_end: datetime


class SwitchState(BaseModel):
    """Derived, ephemeral state of one switch."""

    model_config = ConfigDict(frozen=True)

    switch_id: str
    status: SwitchStatus = SwitchStatus.CONNECTED
    is_active: bool = False
    active_event: Optional[NormalizedEvent] = None
    active_count: int = 0
    upcoming: List[UpcomingEntry] = Field(default_factory=list)
    last_evaluated_at: Optional[datetime] = None
    last_error: Optional[str] = None
