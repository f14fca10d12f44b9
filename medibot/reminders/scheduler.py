"""
In-process medication reminder scheduler.

One asyncio task per (medication id, HH:MM) sleeps until the next occurrence
of that clock time, re-arms itself for exactly 24 hours after the instant it
fired, then hands the notification to the fan-out as a detached task. The
wake-up table is only touched from the event loop thread, so schedule() and
cancel() never interleave on a key.

Nothing here is persisted: after a restart the owner replays schedule() for
every active medication in the store.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone as dt_timezone, tzinfo
from typing import Dict, FrozenSet, Iterable, List, Optional, Set, Tuple

from medibot.utils.timezone import get_zoneinfo, now_in
from .fanout import NotificationFanout, build_reminder_event
from .metrics import (
    reminders_scheduled_total,
    reminders_cancelled_total,
    reminders_pending,
    scheduler_wakeups_total,
)
from .models import Channel, FanoutReport, Medication, NotificationEvent, Recipient
from .recurrence import DAILY_INTERVAL, InvalidReminderSchedule, next_occurrence, parse_reminder_times

logger = logging.getLogger(__name__)

WakeupKey = Tuple[str, str]


class Clock:
    """Wall-clock source for the scheduler"""

    def now(self, tz: Optional[tzinfo] = None) -> datetime:
        raise NotImplementedError

    async def sleep_until(self, when: datetime) -> None:
        raise NotImplementedError


class SystemClock(Clock):
    # Long sleeps are split so a suspended host or clock step is noticed within the hour
    max_sleep_seconds = 3600.0

    def now(self, tz: Optional[tzinfo] = None) -> datetime:
        return now_in(tz)

    async def sleep_until(self, when: datetime) -> None:
        while True:
            remaining = (when - datetime.now(dt_timezone.utc)).total_seconds()
            if remaining <= 0:
                return
            await asyncio.sleep(min(remaining, self.max_sleep_seconds))


@dataclass(frozen=True)
class ArmedWakeup:
    medication_id: str
    reminder_time: str
    fire_at: datetime
    channels: FrozenSet[Channel]

    @property
    def key(self) -> WakeupKey:
        return (self.medication_id, self.reminder_time)


@dataclass
class _Entry:
    wakeup: ArmedWakeup
    medication: Medication
    recipient: Recipient
    task: Optional[asyncio.Task] = None


class ReminderScheduler:
    def __init__(self, fanout: NotificationFanout, clock: Optional[Clock] = None):
        self.fanout = fanout
        self.clock = clock or SystemClock()
        self._entries: Dict[WakeupKey, _Entry] = {}
        self._inflight: Set[asyncio.Task] = set()

    def schedule(
        self,
        medication: Medication,
        enabled_channels: Iterable[Channel],
        recipient: Optional[Recipient] = None,
    ) -> List[ArmedWakeup]:
        """Arm one wake-up per reminder time, replacing any previous schedule for the medication.

        Raises InvalidReminderSchedule before touching existing wake-ups when the
        medication has no id, no reminder times, or a malformed time.
        Must be called from the event loop thread.
        """
        if not medication.id:
            raise InvalidReminderSchedule("Medication must be stored before it can be scheduled")
        times = parse_reminder_times(medication.reminder_times)
        channels = frozenset(enabled_channels)
        if recipient is None:
            recipient = Recipient(user_id=medication.user_id, phone_number=medication.phone_number)

        self.cancel(medication.id)

        now = self.clock.now(self._zone_for(medication))
        armed = [
            self._arm(medication, rt.label, next_occurrence(rt, now), channels, recipient)
            for rt in times
        ]
        reminders_scheduled_total.inc(len(armed))
        logger.info(
            f"⏰ [Scheduler] {medication.name} ({medication.id}) armed for "
            + ", ".join(w.fire_at.isoformat() for w in armed)
            + f" | channels={sorted(c.value for c in channels)}"
        )
        return armed

    def cancel(self, medication_id: str) -> int:
        """Cancel every pending wake-up of a medication. Fan-outs already running are left alone."""
        keys = [key for key in self._entries if key[0] == medication_id]
        for key in keys:
            entry = self._entries.pop(key)
            if entry.task is not None and entry.task is not asyncio.current_task():
                entry.task.cancel()
        if keys:
            reminders_cancelled_total.inc(len(keys))
            logger.info(f"🛑 [Scheduler] Cancelled {len(keys)} wake-up(s) for medication {medication_id}")
        reminders_pending.set(len(self._entries))
        return len(keys)

    def on_wake(self, key: WakeupKey, fired_at: datetime) -> Optional[asyncio.Task]:
        """Handle a fired wake-up: re-arm at fired_at + 24h, then start the fan-out.

        Returns the fan-out task, or None when nothing is sent (unknown key,
        medication not yet started, or medication ended).
        """
        entry = self._entries.get(key)
        if entry is None:
            return None
        scheduler_wakeups_total.inc()

        medication = entry.medication
        fire_day = self._local(fired_at, medication).date()
        if medication.has_ended_by(fire_day):
            logger.info(f"🏁 [Scheduler] {medication.name} ({medication.id}) ended on {medication.end_date} - retiring {key[1]}")
            self._entries.pop(key, None)
            reminders_pending.set(len(self._entries))
            return None

        # Re-arm before dispatching so channel latency never shifts the cadence
        self._arm(medication, key[1], self._next_fire(fired_at), entry.wakeup.channels, entry.recipient)

        if not medication.is_due_on(fire_day):
            logger.info(f"⏭️  [Scheduler] {medication.name} ({medication.id}) starts {medication.start_date} - skipping {key[1]}")
            return None

        event = build_reminder_event(medication, key[1], fired_at)
        task = asyncio.get_running_loop().create_task(
            self._fan_out(event, entry.wakeup.channels, entry.recipient)
        )
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    def pending(self, medication_id: Optional[str] = None) -> List[ArmedWakeup]:
        wakeups = [
            e.wakeup for key, e in self._entries.items()
            if medication_id is None or key[0] == medication_id
        ]
        return sorted(wakeups, key=lambda w: (w.fire_at, w.medication_id, w.reminder_time))

    def is_scheduled(self, medication_id: str) -> bool:
        return any(key[0] == medication_id for key in self._entries)

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for fan-outs that are already running."""
        if self._inflight:
            await asyncio.wait(set(self._inflight), timeout=timeout)

    async def shutdown(self, timeout: Optional[float] = None) -> None:
        for medication_id in {key[0] for key in self._entries}:
            self.cancel(medication_id)
        await self.drain(timeout)

    def _arm(
        self,
        medication: Medication,
        reminder_time: str,
        fire_at: datetime,
        channels: FrozenSet[Channel],
        recipient: Recipient,
    ) -> ArmedWakeup:
        wakeup = ArmedWakeup(
            medication_id=medication.id,
            reminder_time=reminder_time,
            fire_at=fire_at,
            channels=channels,
        )
        previous = self._entries.get(wakeup.key)
        if (
            previous is not None
            and previous.task is not None
            and previous.task is not asyncio.current_task()
            and not previous.task.done()
        ):
            previous.task.cancel()

        entry = _Entry(wakeup=wakeup, medication=medication, recipient=recipient)
        self._entries[wakeup.key] = entry
        entry.task = asyncio.get_running_loop().create_task(
            self._run(wakeup), name=f"reminder:{wakeup.medication_id}:{reminder_time}"
        )
        reminders_pending.set(len(self._entries))
        return wakeup

    async def _run(self, wakeup: ArmedWakeup) -> None:
        await self.clock.sleep_until(wakeup.fire_at)
        entry = self._entries.get(wakeup.key)
        if entry is None or entry.wakeup is not wakeup:
            return
        self.on_wake(wakeup.key, wakeup.fire_at)

    async def _fan_out(
        self,
        event: NotificationEvent,
        channels: FrozenSet[Channel],
        recipient: Recipient,
    ) -> Optional[FanoutReport]:
        try:
            return await self.fanout.dispatch(event, channels, recipient)
        except Exception:
            logger.exception(f"❌ [Scheduler] Fan-out crashed for medication {event.medication_id}")
            return None

    def _next_fire(self, fired_at: datetime) -> datetime:
        """fired_at + 24h of elapsed time, skipping whole days already in the past."""
        next_fire = fired_at.astimezone(dt_timezone.utc) + DAILY_INTERVAL
        now = self.clock.now(dt_timezone.utc)
        if next_fire <= now:
            missed = (now - next_fire) // DAILY_INTERVAL + 1
            logger.warning(f"⚠️  [Scheduler] Clock jumped past {missed} wake-up(s) - skipping ahead")
            next_fire += DAILY_INTERVAL * missed
        return next_fire.astimezone(fired_at.tzinfo)

    def _zone_for(self, medication: Medication) -> Optional[tzinfo]:
        return get_zoneinfo(medication.timezone)

    def _local(self, instant: datetime, medication: Medication) -> datetime:
        tz = self._zone_for(medication)
        return instant.astimezone(tz) if tz is not None else instant.astimezone()
