"""Outbound notifications to the owner system."""

from jobforge.notify.webhook import (
    Notifier,
    NullNotifier,
    WebhookNotifier,
    create_notifier,
)

__all__ = ["Notifier", "NullNotifier", "WebhookNotifier", "create_notifier"]
