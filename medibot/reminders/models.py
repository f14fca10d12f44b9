"""
Medication reminder domain types
"""
from datetime import date, datetime
from typing import Optional, List, Dict, Any
from enum import Enum
from dataclasses import dataclass, field

from medibot.utils.timezone import normalize_timestamp, parse_date


class Channel(str, Enum):
    """Notification channels a reminder can fan out to"""
    PUSH = "push"
    EMAIL = "email"
    SMS = "sms"
    WHATSAPP = "whatsapp"


class SendStatus(str, Enum):
    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class Medication:
    """A user's medication record as held by the store"""
    user_id: str
    name: str
    dosage: str
    reminder_times: List[str] = field(default_factory=list)
    id: Optional[str] = None
    frequency: str = ""
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    notes: str = ""
    is_active: bool = True
    enable_whatsapp: bool = False
    enable_sms: bool = False
    phone_number: Optional[str] = None
    timezone: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def is_due_on(self, day: date) -> bool:
        if self.start_date and day < self.start_date:
            return False
        if self.end_date and day > self.end_date:
            return False
        return True

    def has_ended_by(self, day: date) -> bool:
        return bool(self.end_date and day > self.end_date)

    def to_document(self) -> Dict[str, Any]:
        """Firestore document body (camelCase field names)"""
        return {
            "userId": self.user_id,
            "name": self.name,
            "dosage": self.dosage,
            "frequency": self.frequency,
            "startDate": self.start_date.isoformat() if self.start_date else "",
            "endDate": self.end_date.isoformat() if self.end_date else None,
            "notes": self.notes,
            "reminderTimes": list(self.reminder_times),
            "isActive": self.is_active,
            "enableWhatsApp": self.enable_whatsapp,
            "enableSms": self.enable_sms,
            # Phone number only kept when a phone channel is opted into
            "phoneNumber": self.phone_number if (self.enable_whatsapp or self.enable_sms) else None,
            "timezone": self.timezone,
        }

    @classmethod
    def from_document(cls, doc_id: Optional[str], data: Dict[str, Any]) -> "Medication":
        return cls(
            id=doc_id,
            user_id=str(data.get("userId", "")),
            name=data.get("name", ""),
            dosage=data.get("dosage", ""),
            frequency=data.get("frequency", "") or "",
            start_date=parse_date(data.get("startDate")),
            end_date=parse_date(data.get("endDate")),
            notes=data.get("notes", "") or "",
            reminder_times=[t for t in (data.get("reminderTimes") or []) if isinstance(t, str) and t.strip()],
            is_active=bool(data.get("isActive", True)),
            enable_whatsapp=bool(data.get("enableWhatsApp", False)),
            enable_sms=bool(data.get("enableSms", False)),
            phone_number=data.get("phoneNumber") or None,
            timezone=data.get("timezone") or None,
            created_at=normalize_timestamp(data.get("createdAt")),
            updated_at=normalize_timestamp(data.get("updatedAt")),
        )


@dataclass
class NotificationPreferences:
    push: bool = True
    email: bool = True
    medication_reminders: bool = True

    @classmethod
    def from_document(cls, data: Optional[Dict[str, Any]]) -> "NotificationPreferences":
        data = data or {}
        return cls(
            push=bool(data.get("notifications", True)),
            email=bool(data.get("emailNotifications", True)),
            medication_reminders=bool(data.get("medicationReminders", True)),
        )


@dataclass
class UserProfile:
    uid: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    phone_number: Optional[str] = None
    fcm_token: Optional[str] = None
    preferences: NotificationPreferences = field(default_factory=NotificationPreferences)

    @classmethod
    def from_document(cls, uid: str, data: Dict[str, Any]) -> "UserProfile":
        return cls(
            uid=uid,
            email=data.get("email") or None,
            display_name=data.get("displayName") or None,
            phone_number=data.get("phoneNumber") or None,
            fcm_token=data.get("fcmToken") or None,
            preferences=NotificationPreferences.from_document(data.get("preferences")),
        )


@dataclass
class Recipient:
    """Per-channel addressing for one user"""
    user_id: str
    email: Optional[str] = None
    phone_number: Optional[str] = None

    def address_for(self, channel: Channel) -> Optional[str]:
        if channel == Channel.PUSH:
            return self.user_id or None
        if channel == Channel.EMAIL:
            return self.email
        return self.phone_number


@dataclass
class NotificationEvent:
    """Payload fanned out on a wake-up; never stored"""
    medication_id: str
    user_id: str
    title: str
    body: str
    reminder_time: Optional[str] = None
    fired_at: Optional[datetime] = None


@dataclass
class SendResult:
    channel: Channel
    status: SendStatus
    error: Optional[str] = None
    message_id: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == SendStatus.SENT

    @classmethod
    def sent(cls, channel: Channel, message_id: Optional[str] = None) -> "SendResult":
        return cls(channel=channel, status=SendStatus.SENT, message_id=message_id)

    @classmethod
    def failed(cls, channel: Channel, error: str) -> "SendResult":
        return cls(channel=channel, status=SendStatus.FAILED, error=error)

    @classmethod
    def skipped(cls, channel: Channel, reason: str) -> "SendResult":
        return cls(channel=channel, status=SendStatus.SKIPPED, error=reason)


@dataclass
class FanoutReport:
    event: NotificationEvent
    results: List[SendResult] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """At least one channel delivered and none failed"""
        return any(r.success for r in self.results) and not any(
            r.status == SendStatus.FAILED for r in self.results
        )

    def by_channel(self) -> Dict[Channel, SendResult]:
        return {r.channel: r for r in self.results}
