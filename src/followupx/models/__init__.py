"""SQLAlchemy models package."""

from followupx.models.base import TimestampMixin, UTCDateTime
from followupx.models.job import JobState, ScheduledJob
from followupx.models.lead import Lead, LeadStatus
from followupx.models.notification import Notification, NotificationPriority, NotificationType
from followupx.models.scheduled_message import MessageChannel, MessageStatus, ScheduledMessage
from followupx.models.task import RecurrenceFrequency, Task, TaskStatus
from followupx.models.user import User

__all__ = [
    "TimestampMixin",
    "UTCDateTime",
    "User",
    "Lead",
    "LeadStatus",
    "Task",
    "TaskStatus",
    "RecurrenceFrequency",
    "Notification",
    "NotificationType",
    "NotificationPriority",
    "ScheduledMessage",
    "MessageChannel",
    "MessageStatus",
    "ScheduledJob",
    "JobState",
]
