"""
Load / import boundary for the persisted document {settings, records}.

Two settings shapes exist at rest:
  - current: {treatmentStartDate, protocols: [...], reminderTime, ...}
  - legacy:  flat {protocol, concentration, syringe, syringeFillAmount,
             startDate, protocolStartDate?, reminderTime, ...}
The shape is told apart by the presence of `protocols` and migrated here,
so everything downstream only ever sees UserSettings.

parse_document() is the live load path: it never raises, bad pieces are
dropped (settings -> None, broken records skipped) and logged.
validate_import() is the backup-file path: same migration, but any
structural problem rejects the whole file.
"""

import logging
from datetime import date
from typing import Optional

from pydantic import Field, ValidationError

from trt_tracker.config import (
    DEFAULT_CONCENTRATION_MG_PER_ML,
    DEFAULT_ENABLE_NOTIFICATIONS,
    DEFAULT_PROTOCOL,
    DEFAULT_PROTOCOL_COLOR,
    DEFAULT_REMINDER_TIME,
    DEFAULT_SYRINGE_DEAD_SPACE_ML,
    DEFAULT_SYRINGE_FILL,
    DEFAULT_SYRINGE_UNITS,
    DEFAULT_SYRINGE_VOLUME_ML,
)
from trt_tracker.core.errors import MalformedPersistedData
from trt_tracker.core.models import (
    Day,
    DocumentModel,
    InjectionRecord,
    NotificationPermission,
    Protocol,
    ProtocolSettings,
    SyringeConfiguration,
    TRTDocument,
    UserSettings,
)
from trt_tracker.core.records import upsert_record

log = logging.getLogger("trt.document")


def default_syringe() -> SyringeConfiguration:
    return SyringeConfiguration(
        volume_ml=DEFAULT_SYRINGE_VOLUME_ML,
        total_units=DEFAULT_SYRINGE_UNITS,
        dead_space_ml=DEFAULT_SYRINGE_DEAD_SPACE_ML,
    )


def default_settings(today: Optional[date] = None) -> UserSettings:
    """First-run settings: one protocol entry starting today."""
    today = today or date.today()
    return UserSettings(
        treatment_start_date=today,
        protocols=[
            ProtocolSettings(
                protocol=Protocol(DEFAULT_PROTOCOL),
                concentration_mg_per_ml=DEFAULT_CONCENTRATION_MG_PER_ML,
                syringe=default_syringe(),
                syringe_fill_amount=DEFAULT_SYRINGE_FILL,
                start_date=today,
                display_color=DEFAULT_PROTOCOL_COLOR,
            )
        ],
        reminder_time=DEFAULT_REMINDER_TIME,
        enable_notifications=DEFAULT_ENABLE_NOTIFICATIONS,
        notification_permission="default",
    )


# ── Legacy settings ──────────────────────────────────────────────────

class LegacyUserSettings(DocumentModel):
    """Flat single-protocol settings written by early versions of the client."""
    protocol: Protocol
    concentration_mg_per_ml: float = Field(alias="concentration")
    start_date: Day = Field(alias="startDate")
    protocol_start_date: Optional[Day] = Field(default=None, alias="protocolStartDate")
    syringe: SyringeConfiguration = Field(default_factory=default_syringe)
    syringe_fill_amount: float = Field(default=DEFAULT_SYRINGE_FILL, alias="syringeFillAmount")
    reminder_time: str = Field(default=DEFAULT_REMINDER_TIME, alias="reminderTime")
    enable_notifications: bool = Field(default=DEFAULT_ENABLE_NOTIFICATIONS, alias="enableNotifications")
    notification_permission: NotificationPermission = Field(
        default="default", alias="notificationPermission",
    )

    def migrate(self) -> UserSettings:
        return UserSettings(
            treatment_start_date=self.start_date,
            protocols=[
                ProtocolSettings(
                    protocol=self.protocol,
                    concentration_mg_per_ml=self.concentration_mg_per_ml,
                    syringe=self.syringe,
                    syringe_fill_amount=self.syringe_fill_amount,
                    start_date=self.protocol_start_date or self.start_date,
                    display_color=DEFAULT_PROTOCOL_COLOR,
                )
            ],
            reminder_time=self.reminder_time,
            enable_notifications=self.enable_notifications,
            notification_permission=self.notification_permission,
        )


def is_legacy_settings(raw: dict) -> bool:
    return "protocols" not in raw and "protocol" in raw


def migrate_settings(raw: dict) -> UserSettings:
    """Validate either settings shape into UserSettings. Raises ValidationError."""
    if is_legacy_settings(raw):
        return LegacyUserSettings.model_validate(raw).migrate()
    return UserSettings.model_validate(raw)


# ── Load path (tolerant) ─────────────────────────────────────────────

def _describe(exc: ValidationError, prefix: str) -> list[str]:
    return [
        f"{prefix}.{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" if err["loc"] else f"{prefix}: {err['msg']}"
        for err in exc.errors()
    ]


def parse_document(raw) -> TRTDocument:
    """Best-effort load: discard what can't be parsed instead of failing."""
    if raw is None:
        return TRTDocument()
    if not isinstance(raw, dict):
        log.warning("Stored document is %s, not an object; starting empty", type(raw).__name__)
        return TRTDocument()

    settings = None
    raw_settings = raw.get("settings")
    if isinstance(raw_settings, dict):
        try:
            settings = migrate_settings(raw_settings)
            if is_legacy_settings(raw_settings):
                log.info("Migrated legacy single-protocol settings (%s)", settings.protocols[0].protocol.value)
        except ValidationError as e:
            log.warning("Discarding malformed settings: %s", "; ".join(_describe(e, "settings")))
    elif raw_settings is not None:
        log.warning("Discarding settings of type %s", type(raw_settings).__name__)

    records: list[InjectionRecord] = []
    raw_records = raw.get("records")
    if not isinstance(raw_records, list):
        if raw_records is not None:
            log.warning("Discarding records of type %s", type(raw_records).__name__)
        raw_records = []
    skipped = 0
    for item in raw_records:
        try:
            records = upsert_record(records, InjectionRecord.model_validate(item))
        except ValidationError:
            skipped += 1
    if skipped:
        log.warning("Skipped %d malformed record(s) of %d", skipped, len(raw_records))

    return TRTDocument(settings=settings, records=records)


# ── Import path (strict) ─────────────────────────────────────────────

def validate_import(raw) -> TRTDocument:
    """Validate a backup file. Raises MalformedPersistedData listing every problem."""
    if not isinstance(raw, dict):
        raise MalformedPersistedData(["document must be a JSON object"])

    errors = []
    if "settings" not in raw:
        errors.append("settings: field required (may be null)")
    if not isinstance(raw.get("records"), list):
        errors.append("records: must be a list")
    if errors:
        raise MalformedPersistedData(errors)

    settings = None
    raw_settings = raw["settings"]
    if raw_settings is not None:
        if not isinstance(raw_settings, dict):
            errors.append("settings: must be an object or null")
        else:
            try:
                settings = migrate_settings(raw_settings)
            except ValidationError as e:
                errors.extend(_describe(e, "settings"))

    records = []
    seen = set()
    for i, item in enumerate(raw["records"]):
        try:
            record = InjectionRecord.model_validate(item)
        except ValidationError as e:
            errors.extend(_describe(e, f"records.{i}"))
            continue
        if record.id in seen:
            errors.append(f"records.{i}.id: duplicate id {record.id!r}")
            continue
        seen.add(record.id)
        records.append(record)

    if errors:
        raise MalformedPersistedData(errors)
    return TRTDocument(settings=settings, records=records)


def serialize_document(doc: TRTDocument) -> dict:
    """JSON-ready dict with the stored key names and ISO dates."""
    return doc.model_dump(mode="json", by_alias=True)
