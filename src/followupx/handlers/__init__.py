"""Built-in job handlers and their periodic schedules."""

from __future__ import annotations

from followupx.config import Settings, get_settings
from followupx.handlers import maintenance, messages, overdue, recovery, reminders, summary
from followupx.scheduler.registry import HandlerRegistry

REMINDER_JOB = reminders.JOB_NAME


def register_default_handlers(registry: HandlerRegistry) -> HandlerRegistry:
    registry.register(reminders.JOB_NAME, reminders.send_task_reminder)
    registry.register(overdue.JOB_NAME, overdue.daily_overdue_scan, concurrency=1)
    registry.register(summary.DAILY_SUMMARY, summary.daily_summary, concurrency=1)
    registry.register(summary.WEEKLY_REPORT, summary.weekly_report, concurrency=1)
    registry.register(recovery.JOB_NAME, recovery.ai_recovery_scan, concurrency=1)
    registry.register(messages.JOB_NAME, messages.scheduled_message_sweep, concurrency=1)
    registry.register(maintenance.JOB_NAME, maintenance.notification_cleanup, concurrency=1)
    return registry


def periodic_jobs(settings: Settings | None = None) -> dict[str, str]:
    """Job name -> cron expression for every built-in recurring job."""
    s = settings or get_settings()
    return {
        overdue.JOB_NAME: s.overdue_scan_cron,
        summary.DAILY_SUMMARY: s.daily_summary_cron,
        recovery.JOB_NAME: s.recovery_scan_cron,
        summary.WEEKLY_REPORT: s.weekly_report_cron,
        messages.JOB_NAME: s.message_sweep_cron,
        maintenance.JOB_NAME: s.cleanup_cron,
    }
