"""
Evaluation engine - decides whether a switch is on for a set of events.

evaluate() is a pure function: same events, rule and `now` give the same
SwitchState. It never performs I/O and never mutates its inputs.

Algorithm:
==========
1. Eligibility   all-day / busy / private / cancelled / declined filters
2. Keywords      exclude always wins; a non-empty include list must match
3. Window        [start - minutes_before_start, end + minutes_after_end)
4. Order         stable sort by start time (ties keep fetch order)
5. Active        first window containing `now` is the representative event
6. Upcoming      next 3 windows that open after `now`
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, List

from calswitch.models import (
    NormalizedEvent,
    SwitchRule,
    SwitchState,
    SwitchStatus,
    UpcomingEntry,
)


UPCOMING_LIMIT = 3


@dataclass(frozen=True)
class Candidate:
    """An event that survived filtering, with its activation window."""
    event: NormalizedEvent
    window_start: datetime
    window_end: datetime

    def contains(self, moment: datetime) -> bool:
        return self.window_start <= moment < self.window_end


def is_eligible(event: NormalizedEvent, rule: SwitchRule) -> bool:
    if event.is_cancelled or event.is_declined:
        return False
    if event.is_all_day and not rule.allow_all_day:
        return False
    if rule.only_busy and not event.is_busy:
        return False
    if event.is_private and not rule.allow_private:
        return False
    return True


def matches_keywords(event: NormalizedEvent, rule: SwitchRule) -> bool:
    haystack = event.search_text()
    if any(word in haystack for word in rule.exclude_words):
        return False
    if rule.include_words:
        return any(word in haystack for word in rule.include_words)
    return True


def candidates(events: Iterable[NormalizedEvent], rule: SwitchRule) -> List[Candidate]:
    """Filter events for a rule and compute windows, sorted by start time."""
    before = timedelta(minutes=rule.minutes_before_start)
    after = timedelta(minutes=rule.minutes_after_end)

    survivors = [
        Candidate(
            event=event,
            window_start=event.start_time - before,
            window_end=event.end_time + after,
        )
        for event in events
        if is_eligible(event, rule) and matches_keywords(event, rule)
    ]
    # sorted() is stable, so equal starts keep fetch order
    return sorted(survivors, key=lambda c: c.event.start_time)


def evaluate(events: Iterable[NormalizedEvent], rule: SwitchRule, now: datetime) -> SwitchState:
    """
    Compute a fresh SwitchState for one rule.

    Args:
        events: Normalized events of the rule's provider and calendar
        rule: The switch's match rules
        now: Evaluation instant (timezone-aware)

    Returns:
        A complete SwitchState with status ACTIVE or IDLE
    """
    ordered = candidates(events, rule)

    active = [c for c in ordered if c.contains(now)]
    upcoming = [
        UpcomingEntry(
            event_id=c.event.id,
            title=c.event.title,
            provider=c.event.provider,
            start_time=c.event.start_time,
            end_time=c.event.end_time,
            window_start=c.window_start,
            window_end=c.window_end,
        )
        for c in ordered
        if c.window_start > now
    ][:UPCOMING_LIMIT]

    return SwitchState(
        switch_id=rule.switch_id,
        status=SwitchStatus.ACTIVE if active else SwitchStatus.IDLE,
        is_active=bool(active),
        active_event=active[0].event if active else None,
        active_count=len(active),
        upcoming=upcoming,
        last_evaluated_at=now,
        last_error=None,
    )
