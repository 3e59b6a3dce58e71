from enum import Enum


class NotificationKind(str, Enum):
    CONFIRMATION = "confirmation"
    FAILURE = "failure"
    EXPIRY = "expiry"
    REMINDER = "reminder"
    CANCELLATION = "cancellation"
