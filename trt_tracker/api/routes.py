"""
FastAPI API routes for the TRT Tracker.
"""

import math
import threading
from dataclasses import asdict
from datetime import date, datetime
from typing import Literal, Optional

from fastapi import APIRouter, Body, Depends, Header, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from trt_tracker.config import API_KEY, NEXT_DATES_COUNT, RESCHEDULE_COUNT, STORAGE_BACKEND
from trt_tracker.core.dose_math import (
    DoseCalculation, calculate_dose, format_dose, is_valid_calculation, weekly_dose_mg,
)
from trt_tracker.core.models import (
    MissedDoseOption, Protocol, ProtocolSettings, SyringeConfiguration, UserSettings,
)
from trt_tracker.core.protocol_history import current_protocol, next_protocol_color
from trt_tracker.core.schedule import protocol_info
from trt_tracker.core.session import TrackerSession, create_repository

router = APIRouter(prefix="/api")

_session: Optional[TrackerSession] = None
_session_lock = threading.Lock()


def get_session() -> TrackerSession:
    """Process-wide session, loaded from the configured backend on first use."""
    global _session
    if _session is None:
        with _session_lock:
            if _session is None:
                session = TrackerSession(create_repository())
                session.load()
                _session = session
    return _session


# --- Auth ---

def verify_api_key(x_api_key: str = Header(default="")):
    if API_KEY and x_api_key != API_KEY:
        raise HTTPException(status_code=401, detail="Invalid API key")


# --- Models ---

class ProtocolRequest(BaseModel):
    protocol: Protocol
    concentration_mg_per_ml: float
    syringe_volume_ml: float = 1.0
    syringe_units: float = 100.0
    dead_space_ml: float = 0.05
    syringe_fill_amount: float = Field(..., description="Fraction of the syringe volume, 0-1")
    start_date: Optional[date] = None
    color: Optional[str] = Field(None, pattern="^#[0-9a-fA-F]{6}$")


class StartDateRequest(BaseModel):
    start_date: date


class NotificationRequest(BaseModel):
    reminder_time: Optional[str] = Field(None, pattern="^([01][0-9]|2[0-3]):[0-5][0-9]$")
    enable_notifications: Optional[bool] = None
    notification_permission: Optional[Literal["default", "granted", "denied"]] = None


class RecordRequest(BaseModel):
    date: date
    dose_mg: Optional[float] = Field(None, ge=0)
    missed: bool = False
    notes: str = ""


class MissedDoseRequest(BaseModel):
    option: MissedDoseOption
    notes: Optional[str] = None


class MissedDayRequest(MissedDoseRequest):
    date: date


class RescheduleRequest(BaseModel):
    missed_date: date
    count: int = Field(RESCHEDULE_COUNT, ge=0, le=365)


# --- Serialization helpers ---

def _finite(value: float) -> Optional[float]:
    """JSON has no inf/nan; invalid configuration reads as null."""
    return value if math.isfinite(value) else None


def _calc_payload(calc: DoseCalculation) -> dict:
    return {
        **{k: _finite(v) for k, v in asdict(calc).items()},
        "valid": is_valid_calculation(calc),
        "formatted": {
            "mg": format_dose(calc.mg_per_injection, "mg"),
            "ml": format_dose(calc.volume_per_injection_ml, "mL"),
            "units": format_dose(calc.units_per_injection, "units"),
        },
    }


def _settings_payload(settings: UserSettings) -> dict:
    return {
        **settings.model_dump(mode="json"),
        "current": current_protocol(settings).model_dump(mode="json"),
    }


def _protocol_entry(req: ProtocolRequest, start_date: date, color: str) -> ProtocolSettings:
    return ProtocolSettings(
        protocol=req.protocol,
        concentration_mg_per_ml=req.concentration_mg_per_ml,
        syringe=SyringeConfiguration(
            volume_ml=req.syringe_volume_ml,
            total_units=req.syringe_units,
            dead_space_ml=req.dead_space_ml,
        ),
        syringe_fill_amount=req.syringe_fill_amount,
        start_date=start_date,
        display_color=color,
    )


def _parse_month(month: Optional[str], today: date) -> date:
    if not month:
        return today.replace(day=1)
    try:
        return datetime.strptime(month, "%Y-%m").date()
    except ValueError:
        raise HTTPException(status_code=422, detail="month must be YYYY-MM")


# --- Endpoints ---

@router.get("/status")
def status(session: TrackerSession = Depends(get_session)):
    """Health/status check."""
    return {
        "status": "ok",
        "storage": STORAGE_BACKEND,
        "has_settings": session.document.settings is not None,
        "record_count": len(session.records),
        "today": session.today(),
    }


@router.get("/settings", dependencies=[Depends(verify_api_key)])
def get_settings(session: TrackerSession = Depends(get_session)):
    """Full settings including protocol history (defaults on first run)."""
    return _settings_payload(session.settings)


@router.put("/settings", dependencies=[Depends(verify_api_key)])
def update_settings(req: ProtocolRequest, session: TrackerSession = Depends(get_session)):
    """Edit the current protocol entry in place (no new history period)."""
    current = current_protocol(session.settings)
    entry = _protocol_entry(req, req.start_date or current.start_date, req.color or current.display_color)
    return _settings_payload(session.update_current_protocol(entry))


@router.post("/protocols", dependencies=[Depends(verify_api_key)])
def change_protocol(req: ProtocolRequest, session: TrackerSession = Depends(get_session)):
    """Start a new protocol period; earlier periods stay in the history."""
    entry = _protocol_entry(
        req, req.start_date or session.today(), req.color or next_protocol_color(session.document.settings),
    )
    settings = session.change_protocol(entry)
    return {**_settings_payload(settings), "status": "ok"}


@router.put("/protocols/current/start-date", dependencies=[Depends(verify_api_key)])
def shift_start_date(req: StartDateRequest, session: TrackerSession = Depends(get_session)):
    """Move the current protocol's start date (whole future schedule shifts)."""
    return _settings_payload(session.shift_schedule(req.start_date))


@router.put("/notifications", dependencies=[Depends(verify_api_key)])
def update_notifications(req: NotificationRequest, session: TrackerSession = Depends(get_session)):
    """Reminder time and notification permission state (no delivery)."""
    settings = session.update_notifications(
        req.reminder_time, req.enable_notifications, req.notification_permission,
    )
    return _settings_payload(settings)


@router.get("/records", dependencies=[Depends(verify_api_key)])
def get_records(
    start: Optional[date] = None,
    end: Optional[date] = None,
    session: TrackerSession = Depends(get_session),
):
    """Injection records, oldest first, optionally limited to [start, end]."""
    records = sorted(session.records, key=lambda r: r.date)
    if start:
        records = [r for r in records if r.date >= start]
    if end:
        records = [r for r in records if r.date <= end]
    return [r.model_dump(mode="json") for r in records]


@router.post("/records", dependencies=[Depends(verify_api_key)])
def log_injection(req: RecordRequest, session: TrackerSession = Depends(get_session)):
    """Record an injection (or a missed dose) for a day."""
    record = session.record_injection(req.date, req.dose_mg, req.missed, req.notes)
    return {**record.model_dump(mode="json"), "status": "ok"}


@router.post("/records/{record_id}/missed", dependencies=[Depends(verify_api_key)])
def resolve_missed(record_id: str, req: MissedDoseRequest, session: TrackerSession = Depends(get_session)):
    """Resolve a missed dose: skip, maintain, or shift the schedule."""
    try:
        record, settings = session.resolve_missed_dose(record_id, req.option, req.notes)
    except KeyError:
        raise HTTPException(status_code=404, detail="Record not found")
    return {
        "record": record.model_dump(mode="json"),
        "settings": _settings_payload(settings),
        "status": "ok",
    }


@router.post("/missed", dependencies=[Depends(verify_api_key)])
def mark_missed(req: MissedDayRequest, session: TrackerSession = Depends(get_session)):
    """Missed-dose flow for a day, creating its record if needed."""
    record, settings = session.mark_missed(req.date, req.option, req.notes)
    return {
        "record": record.model_dump(mode="json"),
        "settings": _settings_payload(settings),
        "status": "ok",
    }


@router.get("/calendar", dependencies=[Depends(verify_api_key)])
def get_calendar(
    month: Optional[str] = Query(None, description="YYYY-MM, defaults to the current month"),
    session: TrackerSession = Depends(get_session),
):
    """Scheduled days of a month with their status (Completed/Missed/PendingLog/Upcoming)."""
    month_start = _parse_month(month, session.today())
    days = session.month_schedule(month_start)
    for cell in days:
        cell["dose_mg"] = _finite(cell["dose_mg"])
    return {"month": month_start.strftime("%Y-%m"), "days": days}


@router.get("/dose-summary", dependencies=[Depends(verify_api_key)])
def get_dose_summary(session: TrackerSession = Depends(get_session)):
    """Header numbers for the current protocol."""
    entry = current_protocol(session.settings)
    weekly = weekly_dose_mg(entry)
    return {
        "protocol": entry.protocol.value,
        "weekly_dose_mg": _finite(weekly),
        "weekly_formatted": format_dose(weekly, "mg"),
        **_calc_payload(session.dose_summary()),
    }


@router.get("/dose/calculate", dependencies=[Depends(verify_api_key)])
def dose_calculator(
    weekly_dose_mg: float = Query(..., ge=0),
    concentration_mg_per_ml: float = Query(...),
    protocol: Protocol = Query(...),
    syringe_volume_ml: float = 1.0,
    syringe_units: float = 100.0,
    dead_space_ml: float = 0.05,
):
    """Stateless calculator: weekly target -> per-injection mg / mL / units."""
    syringe = SyringeConfiguration(
        volume_ml=syringe_volume_ml, total_units=syringe_units, dead_space_ml=dead_space_ml,
    )
    calc = calculate_dose(weekly_dose_mg, concentration_mg_per_ml, syringe, protocol)
    return {"protocol": protocol.value, "weekly_dose_mg": weekly_dose_mg, **_calc_payload(calc)}


@router.get("/schedule/next", dependencies=[Depends(verify_api_key)])
def next_injections(
    count: int = Query(NEXT_DATES_COUNT, ge=0, le=365),
    session: TrackerSession = Depends(get_session),
):
    """Upcoming due dates for the current protocol."""
    entry = current_protocol(session.settings)
    info = protocol_info(entry.protocol, session.today())
    info["next_injection_dates"] = session.next_dates(count)
    return info


@router.post("/schedule/reschedule", dependencies=[Depends(verify_api_key)])
def reschedule_preview(req: RescheduleRequest, session: TrackerSession = Depends(get_session)):
    """Dates the schedule would follow if shifted after a missed dose (not saved)."""
    return {"missed_date": req.missed_date, "dates": session.reschedule_preview(req.missed_date, req.count)}


@router.get("/analytics/weekly", dependencies=[Depends(verify_api_key)])
def weekly_analytics(session: TrackerSession = Depends(get_session)):
    """Last four weeks: totals per week and compliance."""
    return session.weekly_summary()


@router.get("/chart", dependencies=[Depends(verify_api_key)])
def injection_chart(session: TrackerSession = Depends(get_session)):
    """Completed injections for the history chart, coloured by protocol."""
    return session.chart()


@router.get("/export", dependencies=[Depends(verify_api_key)])
def export_backup(session: TrackerSession = Depends(get_session)):
    """Backup file: the stored document as JSON."""
    filename = f"trt-backup-{session.today().isoformat()}.json"
    return JSONResponse(
        session.export_document(),
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/import", dependencies=[Depends(verify_api_key)])
def import_backup(data: dict = Body(...), session: TrackerSession = Depends(get_session)):
    """Replace all data with a backup file (validated first, legacy shape accepted)."""
    doc = session.import_document(data)
    return {
        "status": "ok",
        "has_settings": doc.settings is not None,
        "record_count": len(doc.records),
    }
