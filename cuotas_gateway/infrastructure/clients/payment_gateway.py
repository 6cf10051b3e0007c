"""Payment gateway HTTP client for creating checkout preferences"""

import httpx
from dataclasses import dataclass
from typing import Any, Dict, List
from cuotas_gateway.domain.exceptions import PaymentGatewayError
from cuotas_gateway.config import settings


@dataclass
class CheckoutPreference:
    """Opaque redirect reference returned by the gateway"""

    preference_id: str
    redirect_url: str


class PaymentGatewayClient:
    """Client for the external payment gateway (checkout preferences)"""

    def __init__(self, base_url: str | None = None, token: str | None = None, timeout: float | None = None):
        self.base_url = base_url or settings.payment_gateway_base
        self.token = token if token is not None else settings.payment_gateway_token
        self.timeout = timeout or settings.http_timeout_seconds

    async def create_preference(
        self,
        intent_id: str,
        items: List[Dict[str, Any]],
        currency: str,
    ) -> CheckoutPreference:
        """
        Create a checkout preference for a payment intent.

        The gateway later reports the outcome through the payment
        confirmation endpoint, using intent_id as external reference.

        Raises:
            PaymentGatewayError: On timeout, HTTP errors, or invalid response
        """
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                response = await client.post(
                    f"{self.base_url}/checkout/preferences",
                    headers=headers,
                    json={
                        "external_reference": intent_id,
                        "currency_id": currency,
                        "items": items,
                        "back_urls": {"success": settings.payment_return_url},
                    },
                )
                response.raise_for_status()
                data = response.json()

                return CheckoutPreference(
                    preference_id=str(data["id"]),
                    redirect_url=data["init_point"],
                )

            except httpx.TimeoutException as e:
                raise PaymentGatewayError(f"Payment gateway timeout after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                raise PaymentGatewayError(f"Payment gateway error: {e.response.status_code}") from e
            except httpx.RequestError as e:
                raise PaymentGatewayError(f"Payment gateway unreachable: {e}") from e
            except (KeyError, ValueError, TypeError) as e:
                raise PaymentGatewayError(f"Invalid preference data from gateway: {e}") from e
