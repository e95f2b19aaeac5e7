"""
Schedule generator: calendar days on which an injection is due.

Every sequence is start + k * days_between_injections(protocol), computed
with date arithmetic (calendar-day granularity, month/year rollover handled
by datetime.date). All functions are pure and return fresh lists.
"""

from datetime import date, timedelta
from typing import Optional

from trt_tracker.config import NEXT_DATES_COUNT, PROTOCOL_INFO, RESCHEDULE_COUNT
from trt_tracker.core.dose_math import days_between_injections, injections_per_week
from trt_tracker.core.models import Protocol, ProtocolSettings
from trt_tracker.core.protocol_history import protocol_periods


def next_injection_dates(start: date, protocol: Protocol, count: int = NEXT_DATES_COUNT) -> list[date]:
    """Exactly `count` due dates, the first one being `start`. count <= 0 -> []."""
    step = days_between_injections(protocol)
    return [start + timedelta(days=k * step) for k in range(max(count, 0))]


def reschedule_from_date(missed: date, protocol: Protocol, count: int = RESCHEDULE_COUNT) -> list[date]:
    """New sequence starting the day after a missed dose; the missed day itself is excluded."""
    return next_injection_dates(missed + timedelta(days=1), protocol, count)


def injection_dates_until(start: date, protocol: Protocol, end: date) -> list[date]:
    """All due dates from `start` up to and including `end`."""
    if end < start:
        return []
    step = days_between_injections(protocol)
    return next_injection_dates(start, protocol, (end - start).days // step + 1)


def history_schedule(protocols: list[ProtocolSettings], end: date) -> list[tuple[date, ProtocolSettings]]:
    """
    Due dates across the whole protocol history, each paired with the entry
    that generated it. A period runs from its entry's start date up to the
    day before the next period starts; the last one runs through `end`.
    """
    schedule = []
    for entry, period_start, period_end in protocol_periods(protocols):
        last_day = end if period_end is None else min(end, period_end - timedelta(days=1))
        for day in injection_dates_until(period_start, entry.protocol, last_day):
            schedule.append((day, entry))
    return schedule


# ── Due check / protocol info ────────────────────────────────────────

def is_injection_due(last_injection: date, protocol: Protocol, today: Optional[date] = None) -> bool:
    """True once at least one protocol interval has passed since the last injection."""
    today = today or date.today()
    return (today - last_injection).days >= days_between_injections(protocol)


def protocol_info(protocol: Protocol, today: Optional[date] = None) -> dict:
    """Labels for a protocol plus its next injection dates counted from today."""
    protocol = Protocol(protocol)
    today = today or date.today()
    return {
        "protocol": protocol.value,
        "next_injection_dates": next_injection_dates(today, protocol),
        "injections_per_week": injections_per_week(protocol),
        **PROTOCOL_INFO[protocol.value],
    }
