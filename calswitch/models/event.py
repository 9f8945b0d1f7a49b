"""
Normalized calendar event - the provider-agnostic event shape.

Adapters translate Google and Microsoft payloads into this model; the
evaluation engine only ever sees NormalizedEvent instances.
"""

from datetime import datetime
from typing import List

from pydantic import BaseModel, ConfigDict, Field, model_validator

from calswitch.models.connection import Provider


class NormalizedEvent(BaseModel):
    """
    A calendar event after adapter-layer translation.

    Produced fresh on every fetch and never mutated (the model is frozen).
    Both times are timezone-aware and start_time <= end_time.
    """

    model_config = ConfigDict(frozen=True)

    provider: Provider
    id: str
    title: str = ""
    description: str = ""
    location: str = ""
    organizer: str = ""
    categories: List[str] = Field(default_factory=list)

    start_time: datetime
    end_time: datetime

    is_all_day: bool = False
    is_busy: bool = True
    is_private: bool = False

    # Signals the engine drops on, when the provider reports them
    is_cancelled: bool = False
    is_declined: bool = False

    calendar_id: str = "primary"

    @model_validator(mode="after")
    def _check_order(self) -> "NormalizedEvent":
        if self.start_time > self.end_time:
            raise ValueError("start_time must not be after end_time")
        return self

    def search_text(self) -> str:
        """Lowercase haystack used for keyword matching."""
        parts = [
            self.title,
            self.location,
            self.organizer,
            self.description,
            ",".join(self.categories),
        ]
        return " | ".join(p.lower() for p in parts)
