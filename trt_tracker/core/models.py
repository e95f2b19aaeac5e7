"""
Document models for the persisted tracker state.

The stored JSON keeps the key names the web client has always written
(camelCase, `dose`, `protocolColor`, ...); the Python attribute names are
snake_case and mapped through aliases. All models are frozen: mutations
go through model_copy(update=...) and produce a new snapshot.
"""

import datetime as dt
from enum import Enum
from typing import Annotated, Literal, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field


class Protocol(str, Enum):
    DAILY = "Daily"
    E2D = "E2D"
    E3D = "E3D"
    WEEKLY = "Weekly"


class DoseStatus(str, Enum):
    COMPLETED = "Completed"
    MISSED = "Missed"
    PENDING_LOG = "PendingLog"
    UPCOMING = "Upcoming"


class MissedDoseOption(str, Enum):
    SKIP = "skip"
    SHIFT = "shift"
    MAINTAIN = "maintain"


NotificationPermission = Literal["default", "granted", "denied"]


def coerce_day(value):
    """
    Reduce a stored date value to its calendar day.
    Older clients wrote full Date.toISOString() timestamps; only the
    YYYY-MM-DD part is significant.
    """
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, str) and len(value) > 10 and value[10] in "T ":
        return value[:10]
    return value


Day = Annotated[dt.date, BeforeValidator(coerce_day)]


class DocumentModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


class SyringeConfiguration(DocumentModel):
    volume_ml: float = Field(alias="volume")
    total_units: float = Field(alias="units")
    dead_space_ml: float = Field(default=0.0, alias="deadSpace")  # tracked, not subtracted

    @property
    def units_per_ml(self) -> float:
        if self.volume_ml == 0:
            return float("nan") if self.total_units == 0 else float("inf")
        return self.total_units / self.volume_ml


class ProtocolSettings(DocumentModel):
    protocol: Protocol
    concentration_mg_per_ml: float = Field(alias="concentration")
    syringe: SyringeConfiguration
    syringe_fill_amount: float = Field(alias="syringeFillAmount")  # fraction of syringe volume (0-1)
    start_date: Day = Field(alias="startDate")
    display_color: str = Field(default="#f59e0b", alias="protocolColor")


class UserSettings(DocumentModel):
    treatment_start_date: Day = Field(alias="treatmentStartDate")
    protocols: list[ProtocolSettings] = Field(min_length=1)
    reminder_time: str = Field(default="08:00", alias="reminderTime")
    enable_notifications: bool = Field(default=True, alias="enableNotifications")
    notification_permission: NotificationPermission = Field(
        default="default", alias="notificationPermission",
    )


class InjectionRecord(DocumentModel):
    id: str = Field(min_length=1)
    date: Day
    dose_mg: float = Field(alias="dose")
    missed: bool = False
    rescheduled: bool = False
    notes: Optional[str] = None


class TRTDocument(DocumentModel):
    settings: Optional[UserSettings] = None
    records: list[InjectionRecord] = Field(default_factory=list)
