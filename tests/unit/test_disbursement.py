"""Unit tests for the refund disbursement webhook"""

import asyncio
import httpx
import pytest
from cuotas_gateway.infrastructure.clients.disbursement import DisbursementClient

PAYLOAD = {"withdrawal_id": "w-1", "refund_minor": 3500000, "currency": "ARS"}


def make_client(statuses):
    """Client whose payout service answers with the given status codes in order"""
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(statuses[min(len(seen), len(statuses)) - 1])

    client = DisbursementClient("http://payouts.test/refunds", transport=httpx.MockTransport(handler))
    client.backoff_base = 0
    return client, seen


def test_refund_event_delivered_with_idempotency_key():
    client, seen = make_client([202])
    asyncio.run(client.send_refund_event(PAYLOAD))

    assert len(seen) == 1
    assert seen[0].headers["Idempotency-Key"] == "w-1"


def test_server_errors_are_retried():
    client, seen = make_client([503, 502, 200])
    asyncio.run(client.send_refund_event(PAYLOAD))
    assert len(seen) == 3


def test_refused_refund_is_not_retried():
    client, seen = make_client([422])
    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(client.send_refund_event(PAYLOAD))
    assert len(seen) == 1


def test_gives_up_after_max_retries():
    client, seen = make_client([500])
    client.max_retries = 3
    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(client.send_refund_event(PAYLOAD))
    assert len(seen) == 3
