"""Metric definitions for the realtime chat core."""

from __future__ import annotations

from .registry import registry

realtime_events_total = registry.counter(
    "realtime_events_total",
    "Count of realtime events handled, by wire name and direction.",
    label_names=("event", "direction"),
)

realtime_delivery_failures_total = registry.counter(
    "realtime_delivery_failures_total",
    "Frames that could not be written to a connection.",
    label_names=("event",),
)

realtime_connections = registry.gauge(
    "realtime_active_connections",
    "Number of active websocket connections handled locally.",
    label_names=("scope",),
)

realtime_rooms = registry.gauge(
    "realtime_rooms",
    "Number of rooms with at least one subscribed connection.",
)

chat_errors_total = registry.counter(
    "chat_errors_total",
    "Domain errors reported to clients, by error class and transport.",
    label_names=("error", "transport"),
)

realtime_online_users = registry.gauge(
    "realtime_online_users",
    "Users currently visible as online on this process.",
)
