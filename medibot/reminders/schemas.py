"""
Request and response schemas for the reminders API
"""
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from medibot.utils.timezone import is_valid_timezone

from .models import FanoutReport, Medication
from .scheduler import ArmedWakeup


# Request field -> Firestore document field
_DOCUMENT_FIELDS = {
    "name": "name",
    "dosage": "dosage",
    "frequency": "frequency",
    "start_date": "startDate",
    "end_date": "endDate",
    "notes": "notes",
    "reminder_times": "reminderTimes",
    "is_active": "isActive",
    "enable_whatsapp": "enableWhatsApp",
    "enable_sms": "enableSms",
    "phone_number": "phoneNumber",
    "timezone": "timezone",
}


def _check_timezone(value: Optional[str]) -> Optional[str]:
    if value is None or not value.strip():
        return None
    value = value.strip()
    if not is_valid_timezone(value):
        raise ValueError(f"Unknown timezone {value!r}; expected an IANA name such as 'America/New_York'")
    return value


class MedicationCreate(BaseModel):
    """Schema for adding a medication"""
    user_id: str
    name: str = Field(..., min_length=1)
    dosage: str = Field(..., min_length=1)
    frequency: str = ""
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    notes: str = ""
    reminder_times: List[str] = Field(default_factory=list)
    is_active: bool = True
    enable_whatsapp: bool = False
    enable_sms: bool = False
    phone_number: Optional[str] = None
    timezone: Optional[str] = None

    @field_validator("timezone")
    @classmethod
    def known_timezone(cls, v: Optional[str]) -> Optional[str]:
        return _check_timezone(v)

    def to_medication(self) -> Medication:
        return Medication(**self.model_dump())


class MedicationUpdate(BaseModel):
    """Partial update; only fields sent by the client are changed"""
    name: Optional[str] = Field(None, min_length=1)
    dosage: Optional[str] = Field(None, min_length=1)
    frequency: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    notes: Optional[str] = None
    reminder_times: Optional[List[str]] = None
    is_active: Optional[bool] = None
    enable_whatsapp: Optional[bool] = None
    enable_sms: Optional[bool] = None
    phone_number: Optional[str] = None
    timezone: Optional[str] = None

    @field_validator(
        "name", "dosage", "frequency", "notes", "reminder_times", "is_active", "enable_whatsapp", "enable_sms"
    )
    @classmethod
    def not_null(cls, v):
        # Only start_date, end_date, phone_number and timezone can be cleared
        if v is None:
            raise ValueError("may be omitted but not set to null")
        return v

    @field_validator("timezone")
    @classmethod
    def known_timezone(cls, v: Optional[str]) -> Optional[str]:
        return _check_timezone(v)

    def to_document_changes(self) -> Dict[str, Any]:
        changes: Dict[str, Any] = {}
        for key, value in self.model_dump(exclude_unset=True).items():
            if isinstance(value, date):
                value = value.isoformat()
            changes[_DOCUMENT_FIELDS[key]] = value
        return changes


class MedicationRead(BaseModel):
    id: str
    user_id: str
    name: str
    dosage: str
    frequency: str
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    notes: str
    reminder_times: List[str]
    is_active: bool
    enable_whatsapp: bool
    enable_sms: bool
    phone_number: Optional[str] = None
    timezone: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_medication(cls, m: Medication) -> "MedicationRead":
        return cls(
            id=m.id,
            user_id=m.user_id,
            name=m.name,
            dosage=m.dosage,
            frequency=m.frequency,
            start_date=m.start_date,
            end_date=m.end_date,
            notes=m.notes,
            reminder_times=m.reminder_times,
            is_active=m.is_active,
            enable_whatsapp=m.enable_whatsapp,
            enable_sms=m.enable_sms,
            phone_number=m.phone_number,
            timezone=m.timezone,
            created_at=m.created_at,
            updated_at=m.updated_at,
        )


class ScheduleRead(BaseModel):
    """An armed wake-up"""
    medication_id: str
    reminder_time: str
    fire_at: datetime
    channels: List[str]

    @classmethod
    def from_wakeup(cls, w: ArmedWakeup) -> "ScheduleRead":
        return cls(
            medication_id=w.medication_id,
            reminder_time=w.reminder_time,
            fire_at=w.fire_at,
            channels=sorted(c.value for c in w.channels),
        )


class SendResultRead(BaseModel):
    channel: str
    status: str
    error: Optional[str] = None
    message_id: Optional[str] = None


class FanoutReportRead(BaseModel):
    """Outcome of a test reminder across all channels"""
    success: bool
    title: str
    body: str
    results: List[SendResultRead]

    @classmethod
    def from_report(cls, report: FanoutReport) -> "FanoutReportRead":
        return cls(
            success=report.success,
            title=report.event.title,
            body=report.event.body,
            results=[
                SendResultRead(
                    channel=r.channel.value,
                    status=r.status.value,
                    error=r.error,
                    message_id=r.message_id,
                )
                for r in report.results
            ],
        )


class DeviceTokenCreate(BaseModel):
    """Schema for registering a push device token"""
    user_id: str
    platform: str = Field(..., pattern="^(ios|android|web)$")
    fcm_token: str = Field(..., min_length=1)


class DeviceTokenSaved(BaseModel):
    user_id: str
    platform: str
    saved: bool = True


class WatchStarted(BaseModel):
    user_id: str
    watching: bool
    already_watching: bool = False
