"""
Decides whether a check cycle should produce a user-visible notification.

The first measurement of a route always notifies. After that the user's
preference gates emission:
- all: every check, including unchanged ones
- significant: only when the travel time moved by SIGNIFICANT_CHANGE_MINUTES or more
- increase: only when the travel time went up
"""
from dataclasses import dataclass
from typing import Optional

from commute_monitor.models.monitor_settings import NotificationPreference

SIGNIFICANT_CHANGE_MINUTES = 5

TYPE_NEW = "new"
TYPE_INCREASE = "increase"
TYPE_DECREASE = "decrease"
TYPE_UNCHANGED = "unchanged"


@dataclass
class NotificationDecision:
    type: str
    should_emit: bool


def classify_change(change: Optional[int]) -> str:
    if change is None:
        return TYPE_NEW
    if change > 0:
        return TYPE_INCREASE
    if change < 0:
        return TYPE_DECREASE
    return TYPE_UNCHANGED


def decide(change: Optional[int], settings) -> NotificationDecision:
    notification_type = classify_change(change)

    if notification_type == TYPE_NEW:
        return NotificationDecision(type=notification_type, should_emit=True)

    should_emit = False
    if settings.enable_notifications:
        preference = settings.notification_type
        if preference == NotificationPreference.ALL.value:
            should_emit = True
        elif preference == NotificationPreference.SIGNIFICANT.value:
            should_emit = abs(change) >= SIGNIFICANT_CHANGE_MINUTES
        elif preference == NotificationPreference.INCREASE.value:
            should_emit = change > 0

    return NotificationDecision(type=notification_type, should_emit=should_emit)


def build_message(route_name: str, travel_time: int, notification_type: str, change: Optional[int]) -> str:
    """Human-readable text. The route name goes in untruncated."""
    if notification_type == TYPE_NEW:
        return f"{route_name}: Started monitoring route. Initial travel time: {travel_time} min"
    if notification_type == TYPE_INCREASE:
        return f"{route_name}: Travel time increased to {travel_time} min (+{change} min)"
    if notification_type == TYPE_DECREASE:
        return f"{route_name}: Travel time decreased to {travel_time} min ({change} min)"
    return f"{route_name}: Travel time unchanged at {travel_time} min"
