"""FollowUpX: durable scheduling for lead follow-up reminders and scans."""

__version__ = "0.1.0"
