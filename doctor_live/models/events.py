# change feed and notification models
# ChangeEvent is what a subscription yields, DashboardNotification is what the display layer gets

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class ChangeEventType(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class ChangeEvent(BaseModel):
    """row-level mutation delivered by a change feed subscription"""
    event_type: ChangeEventType = Field(..., alias="eventType")
    record: dict = Field(default_factory=dict)

    model_config = {"populate_by_name": True}


class NotificationKind(str, Enum):
    NEW_APPOINTMENT = "new_appointment"
    APPOINTMENT_UPDATED = "appointment_updated"
    NEW_REVIEW = "new_review"


class DashboardNotification(BaseModel):
    kind: NotificationKind
    title: str
    description: str
    record: Optional[dict] = None

    @classmethod
    def of(cls, kind: NotificationKind, record: Optional[dict] = None) -> "DashboardNotification":
        title, description = NOTIFICATION_TEXT[kind]
        return cls(kind=kind, title=title, description=description, record=record)


NOTIFICATION_TEXT = {
    NotificationKind.NEW_APPOINTMENT: ("New appointment booked!", "A patient has booked a new appointment."),
    NotificationKind.APPOINTMENT_UPDATED: ("Appointment updated", "An appointment status has been updated."),
    NotificationKind.NEW_REVIEW: ("New review received!", "A patient has left you a review."),
}
