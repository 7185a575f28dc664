from datetime import datetime
from enum import Enum

from pydantic import BaseModel


class NotificationKind(str, Enum):
    HIGH_RISK_ALERT = "high_risk_alert"
    REVIEW_COMPLETED = "review_completed"


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class NotificationEvent(BaseModel):
    kind: NotificationKind
    user_id: str
    related_id: str
    priority: Priority
    title: str
    message: str


class Notification(NotificationEvent):
    id: str
    is_read: bool = False
    created_at: datetime
