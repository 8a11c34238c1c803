"""
Client for the external payment gateway.

The gateway is opaque to this engine: it is asked for a hosted payment link
for the remaining balance and either returns one or fails.
"""
import json

import httpx

from shared.config import settings
from shared.security import INTERNAL_API_KEY
from shared.errors import PaymentGatewayFailure

API_HEADERS = {"X-Internal-API-Key": INTERNAL_API_KEY}


class PaymentLinkProvider:
    def __init__(self, url: str = settings.PAYMENT_LINK_URL, timeout: float = 10.0):
        self.url = url
        self.timeout = timeout

    async def create_payment_link(self, application) -> str:
        payload = {
            "reference": application.display_number,
            "application_id": application.id,
            "amount": application.remaining_amount,
            "currency": "eur",
            "description": f"Remaining payment {application.display_number}",
            "customer_email": application.applicant_contact,
        }
        try:
            async with httpx.AsyncClient(headers=API_HEADERS, timeout=self.timeout) as client:
                resp = await client.post(self.url, content=json.dumps(payload, default=str),
                                         headers={"Content-Type": "application/json"})
                resp.raise_for_status()
                body = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise PaymentGatewayFailure(e) from e

        url = body.get("url")
        if not url:
            raise PaymentGatewayFailure("gateway response did not contain a payment url")
        return url
