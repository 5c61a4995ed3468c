"""Outbound delivery collaborators (email and friends)."""

from followupx.config import Settings, get_settings
from followupx.delivery.base import DeliveryService, LogDelivery


def get_delivery(settings: Settings | None = None) -> DeliveryService:
    """Return SMTP delivery when configured, otherwise a log-only stand-in."""
    settings = settings or get_settings()
    if settings.email_configured:
        from followupx.delivery.email import EmailDelivery

        return EmailDelivery(settings)
    return LogDelivery()


__all__ = ["DeliveryService", "LogDelivery", "get_delivery"]
