"""
Read-side views for the calendar and the header: derived from the schedule,
the protocol history and the records, holding no state of their own.
"""

from datetime import date, timedelta
from typing import Optional

from trt_tracker.core.dose_math import DoseCalculation, calculate_dose, weekly_dose_mg
from trt_tracker.core.models import InjectionRecord, ProtocolSettings
from trt_tracker.core.protocol_history import active_protocol_at
from trt_tracker.core.records import classify, record_for_day
from trt_tracker.core.schedule import history_schedule


def dose_summary(entry: ProtocolSettings) -> DoseCalculation:
    """Per-injection numbers for a protocol entry, from its fill-implied weekly dose."""
    return calculate_dose(
        weekly_dose_mg(entry),
        entry.concentration_mg_per_ml,
        entry.syringe,
        entry.protocol,
    )


def month_bounds(month_start: date) -> tuple[date, date]:
    """First and last day of the month containing `month_start`."""
    first = month_start.replace(day=1)
    next_first = (first + timedelta(days=32)).replace(day=1)
    return first, next_first - timedelta(days=1)


def schedule_for_month(month_start: date, protocols: list[ProtocolSettings],
                       records: list[InjectionRecord], today: Optional[date] = None) -> list[dict]:
    """
    Calendar cells with something to show for the month of `month_start`:
    every scheduled day, plus unscheduled days that carry a record
    (e.g. doses logged before a schedule shift). Sorted by day.
    """
    today = today or date.today()
    first, last = month_bounds(month_start)
    starts = {entry.start_date for entry in protocols}

    cells = {}
    for day, entry in history_schedule(protocols, last):
        if day < first:
            continue
        cells[day] = _cell(day, entry, records, today, scheduled=True, starts=starts)

    for record in records:
        if first <= record.date <= last and record.date not in cells:
            entry = active_protocol_at(record.date, protocols)
            cells[record.date] = _cell(record.date, entry, records, today, scheduled=False, starts=starts)

    return [cells[day] for day in sorted(cells)]


def _cell(day: date, entry: ProtocolSettings, records: list[InjectionRecord],
          today: date, scheduled: bool, starts: set[date]) -> dict:
    record = record_for_day(day, records)
    dose = record.dose_mg if record else dose_summary(entry).mg_per_injection
    return {
        "date": day,
        "status": classify(day, records, today),
        "scheduled": scheduled,
        "protocol": entry.protocol.value,
        "color": entry.display_color,
        "dose_mg": dose,
        "record_id": record.id if record else None,
        "protocol_start": day in starts,
    }
