"""Reminder scheduling engine (recurrence, dual-channel dispatch, delivery, actions).

The engine is intended to run inside a host that owns persistence. Reminder
records are handed in, occurrences are computed for a bounded horizon and
pushed into two independent delivery channels. When a channel fires, the
delivery handler presents the notification; user responses are resolved by
the action handler.
"""
