from prometheus_client import Counter, Gauge


reminders_scheduled_total = Counter(
    "medication_reminders_scheduled_total",
    "Total wake-ups armed by schedule()",
)

reminders_cancelled_total = Counter(
    "medication_reminders_cancelled_total",
    "Total wake-ups cancelled",
)

reminders_pending = Gauge(
    "medication_reminders_pending",
    "Wake-ups currently armed",
)

scheduler_wakeups_total = Counter(
    "medication_reminder_wakeups_total",
    "Total wake-ups fired by the scheduler",
)

reminders_dispatch_success_total = Counter(
    "medication_reminders_dispatch_success_total",
    "Total successful channel sends",
    ["channel"],
)

reminders_dispatch_failed_total = Counter(
    "medication_reminders_dispatch_failed_total",
    "Total failed channel sends",
    ["channel"],
)

reminders_dispatch_skipped_total = Counter(
    "medication_reminders_dispatch_skipped_total",
    "Total channel sends skipped for a missing prerequisite",
    ["channel"],
)
