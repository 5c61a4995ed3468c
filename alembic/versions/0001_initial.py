"""initial

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-18 00:00:00.000000
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

from followupx.models.base import UTCDateTime

revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

LEAD_STATUS = ("new", "contacted", "qualified", "proposal", "negotiation", "won", "lost")
TASK_STATUS = ("pending", "completed", "cancelled")
FREQUENCY = ("daily", "weekly", "monthly")
JOB_STATE = ("pending", "running", "completed", "failed", "cancelled")
CHANNEL = ("whatsapp", "email", "sms", "call")
MESSAGE_STATUS = ("pending", "sent", "failed", "cancelled")
NOTIFICATION_TYPE = (
    "task_reminder", "task_overdue", "task_assigned", "ai_recovery", "lead_assigned",
    "team_activity", "deal_won", "deal_lost", "system", "welcome", "plan_expiry",
)
PRIORITY = ("low", "normal", "high")


def _timestamps():
    return (
        sa.Column("created_at", UTCDateTime(), nullable=False),
        sa.Column("updated_at", UTCDateTime(), nullable=False),
    )


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=True),
        sa.Column("timezone", sa.String(50), nullable=True),
        sa.Column("email_reminders", sa.Boolean(), nullable=True),
        sa.Column("daily_summary", sa.Boolean(), nullable=True),
        sa.Column("weekly_report", sa.Boolean(), nullable=True),
        sa.Column("last_daily_summary_at", UTCDateTime(), nullable=True),
        sa.Column("last_weekly_report_at", UTCDateTime(), nullable=True),
        sa.Column("last_recovery_alert_at", UTCDateTime(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_is_active", "users", ["is_active"])

    op.create_table(
        "leads",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("status", sa.Enum(*LEAD_STATUS, name="leadstatus"), nullable=False),
        sa.Column("last_contacted_at", UTCDateTime(), nullable=True),
        sa.Column("won_at", UTCDateTime(), nullable=True),
        sa.Column("is_deleted", sa.Boolean(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_leads_user_deleted_status", "leads", ["user_id", "is_deleted", "status"])

    op.create_table(
        "tasks",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("lead_id", sa.String(36), sa.ForeignKey("leads.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("type", sa.String(20), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("priority", sa.String(10), nullable=True),
        sa.Column("due_date", UTCDateTime(), nullable=False),
        sa.Column("status", sa.Enum(*TASK_STATUS, name="taskstatus"), nullable=False),
        sa.Column("completed_at", UTCDateTime(), nullable=True),
        sa.Column("reminder_at", UTCDateTime(), nullable=True),
        sa.Column("reminder_sent", sa.Boolean(), nullable=False),
        sa.Column("overdue_notified", sa.Boolean(), nullable=False),
        sa.Column("reminder_job_id", sa.String(36), nullable=True),
        sa.Column("is_recurring", sa.Boolean(), nullable=False),
        sa.Column("recurrence_frequency", sa.Enum(*FREQUENCY, name="recurrencefrequency"), nullable=True),
        sa.Column("recurrence_interval", sa.Integer(), nullable=True),
        sa.Column("recurrence_end_date", UTCDateTime(), nullable=True),
        sa.Column("recurrence_last_created", UTCDateTime(), nullable=True),
        sa.Column("parent_task_id", sa.String(36), sa.ForeignKey("tasks.id", ondelete="SET NULL"), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_tasks_user_status_due", "tasks", ["user_id", "status", "due_date"])
    op.create_index("ix_tasks_status_due_overdue", "tasks", ["status", "due_date", "overdue_notified"])
    op.create_index("ix_tasks_parent_due", "tasks", ["parent_task_id", "due_date"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("type", sa.Enum(*NOTIFICATION_TYPE, name="notificationtype"), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("message", sa.String(500), nullable=False),
        sa.Column("action_url", sa.String(255), nullable=True),
        sa.Column("action_text", sa.String(50), nullable=True),
        sa.Column("lead_id", sa.String(36), nullable=True),
        sa.Column("task_id", sa.String(36), nullable=True),
        sa.Column("read", sa.Boolean(), nullable=False),
        sa.Column("read_at", UTCDateTime(), nullable=True),
        sa.Column("priority", sa.Enum(*PRIORITY, name="notificationpriority"), nullable=True),
        sa.Column("extra", sa.JSON(), nullable=True),
        sa.Column("created_at", UTCDateTime(), nullable=False),
        sa.Column("expires_at", UTCDateTime(), nullable=False),
    )
    op.create_index("ix_notifications_user_read_created", "notifications", ["user_id", "read", "created_at"])
    op.create_index("ix_notifications_expires_at", "notifications", ["expires_at"])

    op.create_table(
        "scheduled_messages",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("lead_id", sa.String(36), sa.ForeignKey("leads.id", ondelete="CASCADE"), nullable=False),
        sa.Column("task_id", sa.String(36), nullable=True),
        sa.Column("channel", sa.Enum(*CHANNEL, name="messagechannel"), nullable=False),
        sa.Column("content", sa.String(1000), nullable=False),
        sa.Column("scheduled_time", UTCDateTime(), nullable=False),
        sa.Column("status", sa.Enum(*MESSAGE_STATUS, name="messagestatus"), nullable=False),
        sa.Column("recipient_name", sa.String(255), nullable=True),
        sa.Column("recipient_phone", sa.String(50), nullable=True),
        sa.Column("recipient_email", sa.String(255), nullable=True),
        sa.Column("sent_at", UTCDateTime(), nullable=True),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("retry_count", sa.Integer(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_scheduled_messages_user_id", "scheduled_messages", ["user_id"])
    op.create_index("ix_scheduled_messages_lead_id", "scheduled_messages", ["lead_id"])
    op.create_index("ix_scheduled_messages_time_status", "scheduled_messages", ["scheduled_time", "status"])

    op.create_table(
        "scheduled_jobs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("data", sa.JSON(), nullable=True),
        sa.Column("unique_key", sa.String(255), nullable=True),
        sa.Column("pending_key", sa.String(255), nullable=True),
        sa.Column("state", sa.Enum(*JOB_STATE, name="jobstate"), nullable=False),
        sa.Column("scheduled_at", UTCDateTime(), nullable=False),
        sa.Column("occurrence_at", UTCDateTime(), nullable=False),
        sa.Column("locked_at", UTCDateTime(), nullable=True),
        sa.Column("lock_token", sa.String(36), nullable=True),
        sa.Column("last_run_at", UTCDateTime(), nullable=True),
        sa.Column("last_finished_at", UTCDateTime(), nullable=True),
        sa.Column("fail_count", sa.Integer(), nullable=False),
        sa.Column("fail_reason", sa.Text(), nullable=True),
        sa.Column("recurrence_rule", sa.String(100), nullable=True),
        sa.Column("timezone", sa.String(50), nullable=True),
        sa.Column("next_run_at", UTCDateTime(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("pending_key"),
    )
    op.create_index("ix_scheduled_jobs_name", "scheduled_jobs", ["name"])
    op.create_index("ix_scheduled_jobs_due", "scheduled_jobs", ["state", "scheduled_at"])
    op.create_index("ix_scheduled_jobs_unique_key_state", "scheduled_jobs", ["unique_key", "state"])


def downgrade() -> None:
    op.drop_table("scheduled_jobs")
    op.drop_table("scheduled_messages")
    op.drop_table("notifications")
    op.drop_table("tasks")
    op.drop_table("leads")
    op.drop_table("users")
