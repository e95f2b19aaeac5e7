"""
Tracker session: owns the current {settings, records} snapshot.

Every mutation is computed from the snapshot, saved through the repository
and only then swapped in, all under one lock, so there is never more than
one save in flight. If the save fails the old snapshot stays current and
the TransportFailure propagates to the caller, who may retry.
"""

import logging
import threading
from datetime import date, timedelta
from typing import Callable, Optional, Protocol as TypingProtocol

from trt_tracker.config import DB_PATH, NEXT_DATES_COUNT, RESCHEDULE_COUNT, STORAGE_BACKEND
from trt_tracker.core import views
from trt_tracker.core.document import default_settings, parse_document, serialize_document, validate_import
from trt_tracker.core.dose_math import DoseCalculation, configuration_errors, days_between_injections
from trt_tracker.core.errors import InvalidConfiguration
from trt_tracker.core.models import (
    InjectionRecord, MissedDoseOption, ProtocolSettings, TRTDocument, UserSettings,
)
from trt_tracker.core.protocol_history import (
    active_protocol_at, append_protocol, current_protocol, replace_current_protocol, shift_current_start,
)
from trt_tracker.core.records import (
    apply_missed_dose_resolution, chart_points, find_record, record_for_day, record_injection,
    upsert_record, weekly_summary,
)
from trt_tracker.core.schedule import next_injection_dates, reschedule_from_date

log = logging.getLogger("trt.session")


class DocumentRepository(TypingProtocol):
    def load(self) -> Optional[dict]: ...

    def save(self, document: dict) -> None: ...


def create_repository(backend: str = STORAGE_BACKEND) -> DocumentRepository:
    if backend == "sqlite":
        from trt_tracker.core.database import SqliteDocumentRepository
        return SqliteDocumentRepository(DB_PATH)
    if backend == "edge_config":
        from trt_tracker.core.edge_config import EdgeConfigRepository
        return EdgeConfigRepository()
    raise ValueError(f"unknown storage backend {backend!r}")


class TrackerSession:

    def __init__(self, repository: DocumentRepository, today: Callable[[], date] = date.today):
        self.repository = repository
        self.today = today
        self._document = TRTDocument()
        self._lock = threading.Lock()

    def load(self) -> TRTDocument:
        """(Re)read the stored document. TransportFailure leaves the snapshot as it was."""
        with self._lock:
            self._document = parse_document(self.repository.load())
        log.info(
            "Loaded document: settings=%s, %d records",
            "yes" if self._document.settings else "none", len(self._document.records),
        )
        return self._document

    # --- Snapshot ---

    @property
    def document(self) -> TRTDocument:
        return self._document

    @property
    def settings(self) -> UserSettings:
        """Stored settings, or first-run defaults (not persisted until the first change)."""
        return self._document.settings or default_settings(self.today())

    @property
    def records(self) -> list[InjectionRecord]:
        return self._document.records

    def _commit(self, mutate: Callable[[TRTDocument], TRTDocument]) -> TRTDocument:
        with self._lock:
            updated = mutate(self._document)
            self.repository.save(serialize_document(updated))
            self._document = updated
        return updated

    def _with_settings(self, doc: TRTDocument, settings: UserSettings) -> TRTDocument:
        return doc.model_copy(update={"settings": settings})

    # --- Settings ---

    def change_protocol(self, entry: ProtocolSettings) -> UserSettings:
        """Append a new protocol period; it becomes current."""
        _check(entry)

        def mutate(doc):
            base = doc.settings or default_settings(self.today())
            return self._with_settings(doc, append_protocol(base, entry))

        log.info("Protocol change -> %s from %s", entry.protocol.value, entry.start_date)
        return self._commit(mutate).settings

    def update_current_protocol(self, entry: ProtocolSettings) -> UserSettings:
        """Edit the current protocol entry in place."""
        _check(entry)

        def mutate(doc):
            base = doc.settings or default_settings(self.today())
            return self._with_settings(doc, replace_current_protocol(base, entry))

        return self._commit(mutate).settings

    def shift_schedule(self, new_start: date) -> UserSettings:
        def mutate(doc):
            base = doc.settings or default_settings(self.today())
            return self._with_settings(doc, shift_current_start(base, new_start))

        log.info("Current protocol start moved to %s", new_start)
        return self._commit(mutate).settings

    def update_notifications(self, reminder_time: Optional[str] = None,
                             enable_notifications: Optional[bool] = None,
                             notification_permission: Optional[str] = None) -> UserSettings:
        update = {
            k: v for k, v in {
                "reminder_time": reminder_time,
                "enable_notifications": enable_notifications,
                "notification_permission": notification_permission,
            }.items() if v is not None
        }

        def mutate(doc):
            base = doc.settings or default_settings(self.today())
            return self._with_settings(doc, base.model_copy(update=update))

        return self._commit(mutate).settings

    # --- Records ---

    def record_injection(self, day: date, dose_mg: Optional[float] = None,
                         missed: bool = False, notes: Optional[str] = None) -> InjectionRecord:
        """
        Log the outcome for `day`. Logging a day again overwrites that day's
        record (same id), so there is at most one record per day.
        Without an explicit dose the protocol active on `day` supplies it.
        """
        if dose_mg is None:
            dose_mg = views.dose_summary(active_protocol_at(day, self.settings.protocols)).mg_per_injection
        holder = {}

        def mutate(doc):
            existing = record_for_day(day, doc.records)
            record = record_injection(day, dose_mg, missed, notes, record_id=existing.id if existing else None)
            holder["record"] = record
            return doc.model_copy(update={"records": upsert_record(doc.records, record)})

        self._commit(mutate)
        log.info("Recorded %s on %s: %.1f mg", "missed dose" if missed else "injection", day, dose_mg)
        return holder["record"]

    def save_record(self, record: InjectionRecord) -> InjectionRecord:
        """Upsert a fully specified record by id."""
        self._commit(lambda doc: doc.model_copy(update={"records": upsert_record(doc.records, record)}))
        return record

    def resolve_missed_dose(self, record_id: str, option: MissedDoseOption,
                            notes: Optional[str] = None) -> tuple[InjectionRecord, UserSettings]:
        """Raises KeyError for an unknown record id."""
        holder = {}

        def mutate(doc):
            record = find_record(doc.records, record_id)
            if record is None:
                raise KeyError(record_id)
            return self._resolve(doc, record, option, notes, holder)

        self._commit(mutate)
        resolved, settings = holder["result"]
        log.info("Missed dose %s on %s resolved: %s", record_id, resolved.date, MissedDoseOption(option).value)
        return resolved, settings

    def mark_missed(self, day: date, option: MissedDoseOption,
                    notes: Optional[str] = None) -> tuple[InjectionRecord, UserSettings]:
        """
        Missed-dose flow for a day that may not have a record yet.
        Creating the record and resolving it are saved as one change.
        """
        holder = {}

        def mutate(doc):
            record = record_for_day(day, doc.records)
            if record is None:
                base = doc.settings or default_settings(self.today())
                dose_mg = views.dose_summary(active_protocol_at(day, base.protocols)).mg_per_injection
                record = record_injection(day, dose_mg, missed=True, notes=notes)
            return self._resolve(doc, record, option, notes, holder)

        self._commit(mutate)
        resolved, settings = holder["result"]
        log.info("Missed dose on %s resolved: %s", day, MissedDoseOption(option).value)
        return resolved, settings

    def _resolve(self, doc: TRTDocument, record: InjectionRecord, option: MissedDoseOption,
                 notes: Optional[str], holder: dict) -> TRTDocument:
        base = doc.settings or default_settings(self.today())
        resolved, settings = apply_missed_dose_resolution(record, option, base, notes)
        holder["result"] = (resolved, settings)
        return doc.model_copy(update={
            "settings": settings,
            "records": upsert_record(doc.records, resolved),
        })

    # --- Backup ---

    def export_document(self) -> dict:
        return serialize_document(self._document)

    def import_document(self, raw) -> TRTDocument:
        """Replace everything with a validated backup. Raises MalformedPersistedData."""
        imported = validate_import(raw)
        self._commit(lambda doc: imported)
        log.info("Imported backup: %d records", len(imported.records))
        return imported

    # --- Views ---

    def month_schedule(self, month_start: date) -> list[dict]:
        return views.schedule_for_month(month_start, self.settings.protocols, self.records, self.today())

    def dose_summary(self) -> DoseCalculation:
        return views.dose_summary(current_protocol(self.settings))

    def next_dates(self, count: int = NEXT_DATES_COUNT) -> list[date]:
        """Upcoming due dates of the current protocol, from today on."""
        entry = current_protocol(self.settings)
        today = self.today()
        start = entry.start_date
        if start < today:
            interval = days_between_injections(entry.protocol)
            periods_behind = -(-(today - start).days // interval)  # ceil
            start += timedelta(days=periods_behind * interval)
        return next_injection_dates(start, entry.protocol, count)

    def reschedule_preview(self, missed: date, count: int = RESCHEDULE_COUNT) -> list[date]:
        return reschedule_from_date(missed, current_protocol(self.settings).protocol, count)

    def weekly_summary(self) -> dict:
        return weekly_summary(self.records, self.today())

    def chart(self) -> list[dict]:
        return chart_points(self.records, self.settings.protocols)


def _check(entry: ProtocolSettings):
    errors = configuration_errors(entry)
    if errors:
        raise InvalidConfiguration(errors)
