"""Payout webhook client with exponential backoff retry logic"""

import httpx
import asyncio
from typing import Dict, Any
from payout_gateway.config import settings
from payout_gateway.domain.models import SettlementResult
from payout_gateway.infrastructure.observability.metrics import webhook_latency_histogram, webhook_failure_counter


def settlement_event(result: SettlementResult) -> Dict[str, Any]:
    """Webhook payload for a committed settlement"""
    return {
        "event": "PAYOUT_SETTLED",
        "creator_id": result.creator_id,
        "months": result.months,
        "contract_ids": result.contract_ids,
        "total_net": result.total_net,
        "transfer_fee": result.transfer_fee,
        "final_payable": result.final_payable,
        "paid_at": result.paid_at.isoformat() if result.paid_at else None,
    }


class PayoutWebhookClient:
    """Client for notifying the accounting system of committed payouts"""

    def __init__(
        self,
        webhook_url: str | None = None,
        max_retries: int | None = None,
        backoff_base: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.webhook_url = webhook_url or settings.payout_webhook_url
        self.max_retries = max_retries if max_retries is not None else settings.webhook_max_retries
        self.backoff_base = backoff_base if backoff_base is not None else settings.webhook_backoff_base
        self.timeout = settings.http_timeout_seconds
        self.transport = transport

    async def send_settlement_event(self, payload: Dict[str, Any]) -> None:
        """
        Send PAYOUT_SETTLED event with retry logic.

        Retry strategy:
        - Exponential backoff: 1s, 2s, 4s, 8s (base * 2^(attempt-1))
        - Retries on 5xx errors and network failures
        - 4xx responses are raised on the first attempt
        - Tracks latency histogram and failure counter

        The ledger commit has already happened; delivery failures are
        surfaced to the caller after the last attempt.
        """
        attempt = 0
        async with httpx.AsyncClient(transport=self.transport) as client:
            while attempt < self.max_retries:
                try:
                    with webhook_latency_histogram.time():
                        response = await client.post(
                            self.webhook_url,
                            json=payload,
                            timeout=self.timeout,
                        )
                        response.raise_for_status()
                        return  # Success

                except (httpx.HTTPStatusError, httpx.RequestError) as e:
                    attempt += 1
                    webhook_failure_counter.inc()

                    if isinstance(e, httpx.HTTPStatusError) and e.response.status_code < 500:
                        raise

                    if attempt >= self.max_retries:
                        # Final failure after all retries
                        raise

                    backoff = self.backoff_base * (2 ** (attempt - 1))
                    await asyncio.sleep(backoff)
