"""
Switch schemas - request/response formats for the /switches endpoints.

Rule input from the device/UI layer is validated and defaulted here, at the
boundary, so the engine only ever sees a well-formed SwitchRule.
"""

from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator

from calswitch.models import Provider, SwitchRule, SwitchState


# ---------------------------------------------------------------------------
# REQUEST SCHEMAS (what the client sends)
# ---------------------------------------------------------------------------

class SwitchRuleIn(BaseModel):
    """
    Schema for creating or replacing a switch's rules.

    Keyword fields accept either a list of words or the raw text a user
    typed, split on commas and newlines.

    Example request body:
    {
        "label": "Office light",
        "provider": "google",
        "include_words": "standup, 1:1",
        "exclude_words": ["cancelled"],
        "minutes_before_start": 5,
        "minutes_after_end": 10
    }
    """
    # switch_id: Optional on create; a "sw-<n>" id is generated when absent
    switch_id: Optional[str] = Field(None, min_length=1, max_length=64, pattern=r"^[A-Za-z0-9_.:-]+$")
    label: str = Field("", max_length=100)
    provider: Provider

    include_words: Union[str, List[str]] = ""
    exclude_words: Union[str, List[str]] = ""

    # Negative offsets are clamped to 0 instead of rejected
    minutes_before_start: int = 0
    minutes_after_end: int = 0

    only_busy: bool = True
    allow_all_day: bool = False
    allow_private: bool = True

    @field_validator("minutes_before_start", "minutes_after_end")
    @classmethod
    def _clamp_offset(cls, value: int) -> int:
        return max(value, 0)

    def to_rule(self, switch_id: Optional[str] = None) -> SwitchRule:
        return SwitchRule(
            switch_id=switch_id or self.switch_id or "",
            label=self.label.strip(),
            provider=self.provider,
            include_words=self.include_words,
            exclude_words=self.exclude_words,
            minutes_before_start=self.minutes_before_start,
            minutes_after_end=self.minutes_after_end,
            only_busy=self.only_busy,
            allow_all_day=self.allow_all_day,
            allow_private=self.allow_private,
        )


# ---------------------------------------------------------------------------
# RESPONSE SCHEMAS (what the server returns)
# ---------------------------------------------------------------------------

class SwitchOut(BaseModel):
    """A switch's rules together with its current state."""
    rule: SwitchRule
    state: SwitchState


class RefreshOut(BaseModel):
    """Response of an on-demand refresh request."""
    accepted: bool
    state: Optional[SwitchState] = None


class TickOut(BaseModel):
    """Summary of one poll tick."""
    fetched: List[Provider]
    reused: List[Provider]
    provider_errors: Dict[Provider, str]
    evaluated: int
    failed: int
