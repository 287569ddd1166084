"""Webhook system: HTTP ingress for schedule deliveries."""

from rsched.webhook.events import DATA_EVENT, EventRegistry
from rsched.webhook.server import WebhookServer

__all__ = ["DATA_EVENT", "EventRegistry", "WebhookServer"]
