"""
Castflow Realtime
=================

Change notification for subscribed clients ("something changed, re-fetch").
"""

from .hub import (
    Change,
    ChangeEvent,
    RealtimeHub,
    Subscription,
    Table,
    WSMessage,
    WSMessageType,
    channel_name,
    get_realtime_hub,
)

__all__ = [
    "Change",
    "ChangeEvent",
    "RealtimeHub",
    "Subscription",
    "Table",
    "WSMessage",
    "WSMessageType",
    "channel_name",
    "get_realtime_hub",
]
