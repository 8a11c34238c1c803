"""
HTTP adapters for the external template renderer and mail transport.

Both services live outside this engine; these clients only speak their JSON
contracts using the internal API key header.
"""
import json

import httpx

from shared.config import settings
from shared.security import INTERNAL_API_KEY
from .dispatcher import OutboundMessage, RenderedMessage, SendResult

API_HEADERS = {"X-Internal-API-Key": INTERNAL_API_KEY}


class HttpTemplateRenderer:
    def __init__(self, url: str = settings.NOTIFICATION_RENDER_URL,
                 timeout: float = settings.NOTIFICATION_TIMEOUT_SECONDS):
        self.url = url
        self.timeout = timeout

    async def render(self, template_key: str, context: dict) -> RenderedMessage:
        payload = {"template": template_key, "context": context}
        async with httpx.AsyncClient(headers=API_HEADERS, timeout=self.timeout) as client:
            # Dates and decimals in the context are sent as strings
            resp = await client.post(self.url, content=json.dumps(payload, default=str),
                                     headers={"Content-Type": "application/json"})
            resp.raise_for_status()
            body = resp.json()
        return RenderedMessage(subject=body["subject"], html=body["html"], text=body.get("text", ""))


class HttpEmailTransport:
    def __init__(self, url: str = settings.NOTIFICATION_SEND_URL,
                 timeout: float = settings.NOTIFICATION_TIMEOUT_SECONDS):
        self.url = url
        self.timeout = timeout

    async def send(self, message: OutboundMessage) -> SendResult:
        payload = {
            "to": message.to,
            "subject": message.subject,
            "html": message.html,
            "text": message.text,
            "tags": [message.template_key],
        }
        try:
            async with httpx.AsyncClient(headers=API_HEADERS, timeout=self.timeout) as client:
                resp = await client.post(self.url, json=payload)
        except httpx.HTTPError as e:
            return SendResult(success=False, error=f"transport unreachable: {e}")

        if resp.status_code >= 400:
            return SendResult(success=False, error=f"transport returned {resp.status_code}: {resp.text[:200]}")
        body = resp.json() if resp.content else {}
        return SendResult(success=True, message_id=body.get("id"))
