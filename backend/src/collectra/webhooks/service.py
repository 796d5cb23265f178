"""Webhook delivery.

Envelopes are POSTed as JSON to every webhook whose operation set
contains the completed operation. Deliveries are independent of each
other and of the HTTP response: a failure is logged and dropped.
"""

import asyncio
import logging
from collections.abc import Sequence
from typing import Any

import httpx
from fastapi.encoders import jsonable_encoder

from collectra.core.types import Operation
from collectra.webhooks.types import Webhook

logger = logging.getLogger(__name__)


class WebhookService:
    """Fans out event envelopes to matching webhooks.

    Args:
        timeout: Seconds allowed per delivery
        transport: Optional httpx transport (tests pass a MockTransport)
    """

    def __init__(self, timeout: float = 10.0, transport: httpx.AsyncBaseTransport | None = None):
        self.timeout = timeout
        self._transport = transport

    def register(self, webhooks: Sequence[Webhook], collection_name: str) -> None:
        """Log the webhooks attached to a collection at startup."""
        for webhook in webhooks:
            logger.info(
                "Webhook '%s' on %s -> %s (%s)",
                webhook.name,
                collection_name,
                webhook.api,
                ", ".join(op.value for op in webhook.on_operation) or "no operations",
            )

    async def fan_out(
        self,
        envelope: dict[str, Any],
        webhooks: Sequence[Webhook],
        operation: Operation,
    ) -> int:
        """Deliver an envelope to every webhook that fires on ``operation``.

        Returns:
            Number of successful deliveries.
        """
        targets = [w for w in webhooks if w.fires_on(operation)]
        if not targets:
            return 0

        payload = jsonable_encoder(envelope)
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            results = await asyncio.gather(
                *(self._deliver(client, w, payload) for w in targets)
            )
        return sum(results)

    async def _deliver(
        self, client: httpx.AsyncClient, webhook: Webhook, payload: dict[str, Any]
    ) -> bool:
        try:
            response = await client.post(webhook.api, json=payload, headers=webhook.headers)
            response.raise_for_status()
        except Exception as e:
            # A failure stays with this webhook; siblings still deliver.
            logger.warning("Webhook '%s' delivery to %s failed: %s", webhook.name, webhook.api, e)
            return False
        logger.debug("Webhook '%s' delivered (%d)", webhook.name, response.status_code)
        return True
