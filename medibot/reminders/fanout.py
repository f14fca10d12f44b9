import asyncio
import logging
from datetime import datetime
from typing import Dict, Iterable, Optional

from .channels import ChannelSender
from .config import settings
from .metrics import (
    reminders_dispatch_success_total,
    reminders_dispatch_failed_total,
    reminders_dispatch_skipped_total,
)
from .models import (
    Channel,
    FanoutReport,
    Medication,
    NotificationEvent,
    Recipient,
    SendResult,
    SendStatus,
)

logger = logging.getLogger(__name__)


def build_reminder_event(medication: Medication, reminder_time: str, fired_at: Optional[datetime] = None) -> NotificationEvent:
    return NotificationEvent(
        medication_id=medication.id or "",
        user_id=medication.user_id,
        title=f"Medication Reminder: {medication.name}",
        body=f"It's time to take your {medication.name} ({medication.dosage}) at {reminder_time}.",
        reminder_time=reminder_time,
        fired_at=fired_at,
    )


def build_test_event(medication: Medication) -> NotificationEvent:
    return NotificationEvent(
        medication_id=medication.id or "",
        user_id=medication.user_id,
        title="Test Reminder",
        body=(
            f"This is a test reminder for your medication {medication.name} "
            f"({medication.dosage}). Your reminders are working!"
        ),
    )


class NotificationFanout:
    """Sends one event to several channels at once; no channel can stall or break another."""

    def __init__(self, senders: Dict[Channel, ChannelSender], timeout_seconds: Optional[float] = None):
        self.senders = senders
        self.timeout_seconds = timeout_seconds or settings.CHANNEL_TIMEOUT_SECONDS

    async def dispatch(
        self,
        event: NotificationEvent,
        channels: Iterable[Channel],
        recipient: Recipient,
    ) -> FanoutReport:
        ordered = sorted(set(channels), key=lambda c: c.value)
        results = await asyncio.gather(*(self._send_one(c, event, recipient) for c in ordered))
        report = FanoutReport(event=event, results=list(results))

        summary = ", ".join(f"{r.channel.value}={r.status.value}" for r in report.results) or "no channels"
        logger.info(f"📣 [Fanout] {event.title} | medication={event.medication_id} user={event.user_id} | {summary}")
        return report

    async def _send_one(self, channel: Channel, event: NotificationEvent, recipient: Recipient) -> SendResult:
        result = await self._attempt(channel, event, recipient)
        if result.status == SendStatus.SENT:
            reminders_dispatch_success_total.labels(channel=channel.value).inc()
        elif result.status == SendStatus.FAILED:
            reminders_dispatch_failed_total.labels(channel=channel.value).inc()
            logger.warning(f"❌ [Fanout] {channel.value} failed for medication {event.medication_id}: {result.error}")
        else:
            reminders_dispatch_skipped_total.labels(channel=channel.value).inc()
            logger.info(f"⏭️  [Fanout] {channel.value} skipped for medication {event.medication_id}: {result.error}")
        return result

    async def _attempt(self, channel: Channel, event: NotificationEvent, recipient: Recipient) -> SendResult:
        sender = self.senders.get(channel)
        if sender is None:
            return SendResult.skipped(channel, "channel not configured")
        address = recipient.address_for(channel)
        if not address:
            return SendResult.skipped(channel, f"no {channel.value} recipient")

        try:
            return await asyncio.wait_for(
                asyncio.to_thread(sender.send, address, event.title, event.body),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            return SendResult.failed(channel, f"timed out after {self.timeout_seconds}s")
        except Exception as e:
            # Sender bugs and provider SDK errors must not reach the scheduler
            logger.exception(f"❌ [Fanout] {channel.value} sender raised")
            return SendResult.failed(channel, f"{type(e).__name__}: {e}")
