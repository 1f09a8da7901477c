from prometheus_client import Counter


reminders_scheduled_total = Counter(
    "reminders_scheduled_total",
    "Total occurrences accepted by at least one delivery channel",
)

reminders_cancelled_total = Counter(
    "reminders_cancelled_total",
    "Total reminder cancellations",
)

channel_submission_failed_total = Counter(
    "reminder_channel_submission_failed_total",
    "Total submissions rejected by a delivery channel",
    ["channel"],
)

channel_precision_degraded_total = Counter(
    "reminder_channel_precision_degraded_total",
    "Total primary submissions downgraded to inexact delivery",
)

reminders_delivered_total = Counter(
    "reminders_delivered_total",
    "Total reminders handed to the notifier",
    ["reminder_type"],
)

reminders_delivery_failed_total = Counter(
    "reminders_delivery_failed_total",
    "Total notifier failures at fire time",
)

reminder_actions_total = Counter(
    "reminder_actions_total",
    "Total user responses to reminders",
    ["outcome"],
)

reminders_superseded_total = Counter(
    "reminders_superseded_total",
    "Total channel firings dropped because the token was replaced or cancelled",
    ["channel"],
)
