"""Refund disbursement webhook: hands processed withdrawals to the payout service"""

import httpx
import asyncio
import logging
from typing import Dict, Any, Optional
from cuotas_gateway.config import settings
from cuotas_gateway.infrastructure.observability.metrics import webhook_latency_histogram, webhook_failure_counter

logger = logging.getLogger(__name__)


class DisbursementClient:
    """Posts REFUND_APPROVED events for withdrawals treasury has processed"""

    def __init__(
        self,
        webhook_url: str | None = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.webhook_url = webhook_url or settings.disbursement_webhook_url
        self.max_retries = settings.webhook_max_retries
        self.backoff_base = settings.webhook_backoff_base
        self.transport = transport

    async def send_refund_event(self, payload: Dict[str, Any]) -> None:
        """
        Deliver one refund event to the payout service.

        The withdrawal id travels as the Idempotency-Key, so a retried
        delivery never pays a refund twice. Network failures and 5xx
        answers are retried with exponential backoff (base * 2^attempt);
        a 4xx means the payout service refused the refund and is raised
        at once for treasury to look at.

        Args:
            payload: withdrawal_id, enrollment_id, participant_id, refund_minor, currency
        """
        withdrawal_id = payload.get("withdrawal_id")
        headers = {"Idempotency-Key": str(withdrawal_id)}
        attempt = 0
        async with httpx.AsyncClient(transport=self.transport, timeout=settings.http_timeout_seconds) as client:
            while True:
                try:
                    with webhook_latency_histogram.time():
                        response = await client.post(self.webhook_url, json=payload, headers=headers)
                        response.raise_for_status()
                    logger.info("Refund handed to disbursement", extra={"withdrawal_id": withdrawal_id})
                    return

                except httpx.HTTPStatusError as e:
                    webhook_failure_counter.inc()
                    if e.response.status_code < 500:
                        logger.error(
                            f"Disbursement refused refund: {e.response.status_code}",
                            extra={"withdrawal_id": withdrawal_id},
                        )
                        raise
                    error = e
                except httpx.RequestError as e:
                    webhook_failure_counter.inc()
                    error = e

                attempt += 1
                if attempt >= self.max_retries:
                    logger.error(
                        f"Refund webhook failed after {attempt} attempts: {error}",
                        extra={"withdrawal_id": withdrawal_id},
                    )
                    raise error

                await asyncio.sleep(self.backoff_base * (2 ** (attempt - 1)))
