"""
Protocol history: which configuration was active on a given day.

The history is an append-only list; the last entry is the current protocol.
Lookups are by "most recent start_date <= day", ties going to the entry
appended later. Nothing is cached, the list may grow between two calls.
"""

from datetime import date
from typing import Optional

from trt_tracker.config import PROTOCOL_COLORS
from trt_tracker.core.models import InjectionRecord, ProtocolSettings, UserSettings


def active_protocol_at(day: date, protocols: list[ProtocolSettings]) -> ProtocolSettings:
    """
    Protocol entry in effect on `day`.
    Days before every start date fall back to the earliest entry.
    """
    if not protocols:
        raise ValueError("protocol history is empty")
    active = None
    for entry in protocols:
        if entry.start_date <= day and (active is None or entry.start_date >= active.start_date):
            active = entry
    if active is None:
        active = min(protocols, key=lambda e: e.start_date)
    return active


def current_protocol(settings: UserSettings) -> ProtocolSettings:
    return settings.protocols[-1]


def next_protocol_color(settings: Optional[UserSettings]) -> str:
    used = len(settings.protocols) if settings else 0
    return PROTOCOL_COLORS[used % len(PROTOCOL_COLORS)]


# ── Settings mutations (each returns a new UserSettings) ─────────────

def append_protocol(settings: UserSettings, entry: ProtocolSettings) -> UserSettings:
    """Protocol change: the new entry becomes current, history is kept."""
    return settings.model_copy(update={"protocols": [*settings.protocols, entry]})


def replace_current_protocol(settings: UserSettings, entry: ProtocolSettings) -> UserSettings:
    """Settings edit: overwrite the current entry in place."""
    return settings.model_copy(update={"protocols": [*settings.protocols[:-1], entry]})


def shift_current_start(settings: UserSettings, new_start: date) -> UserSettings:
    """Schedule shift: move the current entry's start date."""
    shifted = current_protocol(settings).model_copy(update={"start_date": new_start})
    return replace_current_protocol(settings, shifted)


# ── Periods / attribution ────────────────────────────────────────────

def protocol_periods(protocols: list[ProtocolSettings]) -> list[tuple[ProtocolSettings, date, Optional[date]]]:
    """
    (entry, start, end) per effective entry, ordered by start date.
    `end` is the next period's start (exclusive), None for the open last one.
    Entries shadowed by a later entry with the same start date are dropped,
    matching active_protocol_at.
    """
    ordered = sorted(enumerate(protocols), key=lambda p: (p[1].start_date, p[0]))
    effective = [
        entry for i, (_, entry) in enumerate(ordered)
        if i + 1 == len(ordered) or ordered[i + 1][1].start_date != entry.start_date
    ]
    periods = []
    for i, entry in enumerate(effective):
        end = effective[i + 1].start_date if i + 1 < len(effective) else None
        periods.append((entry, entry.start_date, end))
    return periods


def attribute_records(records: list[InjectionRecord],
                      protocols: list[ProtocolSettings]) -> list[tuple[InjectionRecord, ProtocolSettings]]:
    """Pair every record with the protocol that was active on its day."""
    return [(r, active_protocol_at(r.date, protocols)) for r in records]
