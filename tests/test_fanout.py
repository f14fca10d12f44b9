from __future__ import annotations

import asyncio

from medibot.reminders.fanout import NotificationFanout, build_reminder_event, build_test_event
from medibot.reminders.models import Channel, Recipient, SendStatus
from reminder_utils import make_medication

RECIPIENT = Recipient(user_id="user-1", email="pat@example.com", phone_number="+15551234567")


def test_reminder_event_text() -> None:
    event = build_reminder_event(make_medication(), "21:00")
    assert event.title == "Medication Reminder: Metformin"
    assert event.body == "It's time to take your Metformin (500mg) at 21:00."
    assert event.medication_id == "med-1"
    assert event.reminder_time == "21:00"


def test_test_event_text() -> None:
    event = build_test_event(make_medication(name="Lisinopril", dosage="10mg"))
    assert event.title == "Test Reminder"
    assert "Lisinopril (10mg)" in event.body
    assert "Your reminders are working!" in event.body


def test_dispatch_sends_each_channel_once(fanout, senders) -> None:
    event = build_reminder_event(make_medication(), "09:00")
    report = asyncio.run(fanout.dispatch(event, [Channel.PUSH, Channel.EMAIL, Channel.PUSH], RECIPIENT))

    assert [r.channel for r in report.results] == [Channel.EMAIL, Channel.PUSH]
    assert report.success
    assert len(senders[Channel.PUSH].calls) == 1
    assert senders[Channel.EMAIL].calls[0][0] == "pat@example.com"


def test_slow_channel_times_out_without_blocking_others(senders) -> None:
    senders[Channel.WHATSAPP].delay = 0.5
    fanout = NotificationFanout(senders, timeout_seconds=0.1)
    event = build_reminder_event(make_medication(), "09:00")

    report = asyncio.run(fanout.dispatch(event, [Channel.WHATSAPP, Channel.PUSH], RECIPIENT))

    results = report.by_channel()
    assert results[Channel.WHATSAPP].status == SendStatus.FAILED
    assert "timed out" in results[Channel.WHATSAPP].error
    assert results[Channel.PUSH].status == SendStatus.SENT
    assert not report.success


def test_missing_address_is_skipped_not_failed(fanout, senders) -> None:
    event = build_reminder_event(make_medication(), "09:00")
    report = asyncio.run(fanout.dispatch(event, [Channel.EMAIL, Channel.PUSH], Recipient(user_id="user-1")))

    results = report.by_channel()
    assert results[Channel.EMAIL].status == SendStatus.SKIPPED
    assert senders[Channel.EMAIL].calls == []
    assert report.success


def test_unconfigured_channel_is_skipped(senders) -> None:
    fanout = NotificationFanout({Channel.PUSH: senders[Channel.PUSH]}, timeout_seconds=1.0)
    event = build_reminder_event(make_medication(), "09:00")
    report = asyncio.run(fanout.dispatch(event, [Channel.SMS, Channel.PUSH], RECIPIENT))

    assert report.by_channel()[Channel.SMS].status == SendStatus.SKIPPED
    assert report.by_channel()[Channel.PUSH].status == SendStatus.SENT


def test_report_with_only_skips_is_not_a_success(fanout) -> None:
    event = build_reminder_event(make_medication(), "09:00")
    report = asyncio.run(fanout.dispatch(event, [Channel.EMAIL], Recipient(user_id="user-1")))
    assert not report.success


def test_no_channels_yields_empty_report(fanout) -> None:
    event = build_reminder_event(make_medication(), "09:00")
    report = asyncio.run(fanout.dispatch(event, [], RECIPIENT))
    assert report.results == []
    assert not report.success
