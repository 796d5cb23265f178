"""Webhooks - post-operation HTTP notifications."""

from collectra.webhooks.service import WebhookService
from collectra.webhooks.types import Webhook, build_envelope

__all__ = ["Webhook", "WebhookService", "build_envelope"]
