"""
Injection records: creation, upsert, reconciliation against the schedule,
missed-dose handling and the history views built from records.

Reconciliation matches by calendar day, never by id. If two records share a
day the first one in list order wins. The session layer reuses the existing
record's id when a day is logged again, so normal use never produces two.
"""

import uuid
from datetime import date, timedelta
from typing import Optional

from trt_tracker.config import ANALYTICS_WEEKS, CHART_RECORD_LIMIT
from trt_tracker.core.errors import InvalidConfiguration
from trt_tracker.core.models import (
    DoseStatus, InjectionRecord, MissedDoseOption, ProtocolSettings, UserSettings,
)
from trt_tracker.core.protocol_history import attribute_records, current_protocol, shift_current_start


def new_record_id(day: date) -> str:
    return f"{day.isoformat()}-{uuid.uuid4().hex[:12]}"


def record_injection(day: date, dose_mg: float, missed: bool = False,
                     notes: Optional[str] = None, record_id: Optional[str] = None) -> InjectionRecord:
    """Build a record for `day`; a fresh id unless an existing one is passed."""
    return InjectionRecord(
        id=record_id or new_record_id(day),
        date=day,
        dose_mg=dose_mg,
        missed=missed,
        rescheduled=False,
        notes=notes or None,
    )


def upsert_record(records: list[InjectionRecord], record: InjectionRecord) -> list[InjectionRecord]:
    """Replace the record with the same id in place, or append it."""
    updated = list(records)
    for i, existing in enumerate(updated):
        if existing.id == record.id:
            updated[i] = record
            return updated
    updated.append(record)
    return updated


def find_record(records: list[InjectionRecord], record_id: str) -> Optional[InjectionRecord]:
    return next((r for r in records if r.id == record_id), None)


def record_for_day(day: date, records: list[InjectionRecord]) -> Optional[InjectionRecord]:
    """First record on the same calendar day."""
    return next((r for r in records if r.date == day), None)


# ── Reconciliation ───────────────────────────────────────────────────

def classify(day: date, records: list[InjectionRecord], today: Optional[date] = None) -> DoseStatus:
    today = today or date.today()
    record = record_for_day(day, records)
    if record is not None:
        return DoseStatus.MISSED if record.missed else DoseStatus.COMPLETED
    return DoseStatus.PENDING_LOG if day < today else DoseStatus.UPCOMING


def reconcile(schedule: list[date], records: list[InjectionRecord],
              today: Optional[date] = None) -> list[tuple[date, DoseStatus, Optional[InjectionRecord]]]:
    """(day, status, matched record) for every scheduled day, in schedule order."""
    today = today or date.today()
    return [(day, classify(day, records, today), record_for_day(day, records)) for day in schedule]


# ── Missed doses ─────────────────────────────────────────────────────

def apply_missed_dose_resolution(
    record: InjectionRecord,
    option: MissedDoseOption,
    settings: Optional[UserSettings] = None,
    notes: Optional[str] = None,
) -> tuple[InjectionRecord, Optional[UserSettings]]:
    """
    Mark `record` missed and resolve it.

    skip / maintain: record missed, schedule untouched.
    shift:           record missed + rescheduled, and the current protocol
                     restarts the day after the missed dose.

    Only a dose inside the current protocol period can be shifted; moving
    the current entry before an earlier one would rewrite the history.
    Raises InvalidConfiguration otherwise.
    """
    option = MissedDoseOption(option)
    shift = option == MissedDoseOption.SHIFT
    if shift and settings is not None:
        current_start = current_protocol(settings).start_date
        if record.date < current_start:
            raise InvalidConfiguration([
                f"cannot shift the schedule for {record.date}: the current protocol starts {current_start}",
            ])
    update = {"missed": True, "rescheduled": shift}
    if notes is not None:
        update["notes"] = notes or None
    resolved = record.model_copy(update=update)
    if shift and settings is not None:
        settings = shift_current_start(settings, record.date + timedelta(days=1))
    return resolved, settings


# ── History views ────────────────────────────────────────────────────

def _week_start(day: date) -> date:
    """Sunday on or before `day`."""
    return day - timedelta(days=(day.weekday() + 1) % 7)


def weekly_summary(records: list[InjectionRecord], today: Optional[date] = None,
                   weeks: int = ANALYTICS_WEEKS) -> dict:
    """
    Per-week totals over the last `weeks` weeks plus overall compliance.
    compliance = completed / (completed + missed), 100 when nothing was logged.
    """
    today = today or date.today()
    window_start = today - timedelta(days=7 * weeks)
    recent = [r for r in records if window_start <= r.date <= today]

    buckets: dict[date, dict] = {}
    for r in recent:
        bucket = buckets.setdefault(_week_start(r.date), {"total_mg": 0.0, "injections": 0, "missed": 0})
        if r.missed:
            bucket["missed"] += 1
        else:
            bucket["total_mg"] += r.dose_mg
            bucket["injections"] += 1

    week_rows = [
        {
            "week_start": week,
            "total_mg": b["total_mg"],
            "injection_count": b["injections"],
            "missed_count": b["missed"],
            "average_per_injection": b["total_mg"] / b["injections"] if b["injections"] else 0.0,
        }
        for week, b in sorted(buckets.items())
    ]

    completed = [r for r in recent if not r.missed]
    total_mg = sum(r.dose_mg for r in completed)
    return {
        "weeks": week_rows,
        "overall": {
            "total_injections": len(completed),
            "total_missed": len(recent) - len(completed),
            "total_scheduled": len(recent),
            "compliance_rate": len(completed) / len(recent) * 100 if recent else 100.0,
            "total_mg": total_mg,
            "average_mg_per_injection": total_mg / len(completed) if completed else 0.0,
        },
    }


def chart_points(records: list[InjectionRecord], protocols: list[ProtocolSettings],
                 limit: int = CHART_RECORD_LIMIT) -> list[dict]:
    """Last `limit` completed injections, oldest first, coloured by their protocol."""
    completed = sorted((r for r in records if not r.missed), key=lambda r: r.date)
    if limit > 0:
        completed = completed[-limit:]
    return [
        {
            "date": r.date,
            "dose_mg": r.dose_mg,
            "notes": r.notes or "",
            "protocol": entry.protocol.value,
            "color": entry.display_color,
        }
        for r, entry in attribute_records(completed, protocols)
    ]
