from enum import Enum


class NotificationTypeEnum(str, Enum):
    lend = "lend"
    return_ = "return"
    reminder = "reminder"
    overdue = "overdue"
    fine = "fine"
    system = "system"


class NotificationPriorityEnum(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"
    urgent = "urgent"
