"""
Reminder service: keeps store writes and armed wake-ups in step
"""
import logging
from typing import Any, Dict, List, Optional, Set

from .fanout import NotificationFanout, build_test_event
from .models import Channel, FanoutReport, Medication, Recipient, UserProfile
from .recurrence import InvalidReminderSchedule, parse_reminder_times
from .repository import MedicationRepository
from .scheduler import ArmedWakeup, ReminderScheduler

logger = logging.getLogger(__name__)


class ReminderService:
    """Medication writes plus scheduling. Call from the event loop thread."""

    def __init__(self, repository: MedicationRepository, scheduler: ReminderScheduler, fanout: NotificationFanout):
        self.repository = repository
        self.scheduler = scheduler
        self.fanout = fanout

    def resolve_channels(self, medication: Medication, profile: Optional[UserProfile]) -> Set[Channel]:
        channels: Set[Channel] = set()
        if profile is not None and not profile.preferences.medication_reminders:
            return channels
        if profile is None or profile.preferences.push:
            channels.add(Channel.PUSH)
        if profile is not None and profile.email and profile.preferences.email:
            channels.add(Channel.EMAIL)
        phone = medication.phone_number or (profile.phone_number if profile else None)
        if medication.enable_whatsapp and medication.phone_number:
            channels.add(Channel.WHATSAPP)
        if medication.enable_sms and phone:
            channels.add(Channel.SMS)
        return channels

    def resolve_recipient(self, medication: Medication, profile: Optional[UserProfile]) -> Recipient:
        return Recipient(
            user_id=medication.user_id,
            email=profile.email if profile else None,
            phone_number=medication.phone_number or (profile.phone_number if profile else None),
        )

    def schedule_medication(self, medication: Medication) -> List[ArmedWakeup]:
        """(Re)arm a stored medication's reminders, or cancel them when it should not fire."""
        if not medication.is_active or not medication.reminder_times:
            self.scheduler.cancel(medication.id)
            return []

        profile = self.repository.get_user_profile(medication.user_id)
        channels = self.resolve_channels(medication, profile)
        if not channels:
            logger.info(f"🔕 [Reminders] User {medication.user_id} has medication reminders off - not scheduling {medication.id}")
            self.scheduler.cancel(medication.id)
            return []
        return self.scheduler.schedule(medication, channels, self.resolve_recipient(medication, profile))

    def create_medication(self, medication: Medication) -> Medication:
        parse_reminder_times(medication.reminder_times)
        stored = self.repository.add_medication(medication)
        self.schedule_medication(stored)
        logger.info(f"💊 [Reminders] Added medication {stored.name} ({stored.id}) for user {stored.user_id}")
        return stored

    def update_medication(self, medication_id: str, changes: Dict[str, Any]) -> Optional[Medication]:
        if "reminderTimes" in changes:
            parse_reminder_times(changes["reminderTimes"])
        updated = self.repository.update_medication(medication_id, changes)
        if updated is None:
            return None
        self.schedule_medication(updated)
        return updated

    def delete_medication(self, medication_id: str) -> bool:
        deleted = self.repository.delete_medication(medication_id)
        self.scheduler.cancel(medication_id)
        return deleted

    async def send_test_reminder(self, medication_id: str) -> Optional[FanoutReport]:
        """Fan a one-off test message out to the medication's channels and wait for the outcome."""
        medication = self.repository.get_medication(medication_id)
        if medication is None:
            return None
        profile = self.repository.get_user_profile(medication.user_id)
        channels = self.resolve_channels(medication, profile)
        return await self.fanout.dispatch(
            build_test_event(medication),
            channels,
            self.resolve_recipient(medication, profile),
        )

    def bootstrap(self) -> int:
        """Replay schedule() for every active medication; returns how many were armed."""
        armed = 0
        for medication in self.repository.list_all_active_medications():
            try:
                if self.schedule_medication(medication):
                    armed += 1
            except InvalidReminderSchedule as e:
                logger.warning(f"⚠️  [Reminders] Not scheduling medication {medication.id}: {e}")
        logger.info(f"✅ [Reminders] Bootstrapped schedules for {armed} medication(s)")
        return armed
