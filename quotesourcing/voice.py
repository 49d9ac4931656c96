"""Voice-call platform collaborator."""

import logging
from typing import Protocol

import httpx

from quotesourcing.config import CallConfig
from quotesourcing.errors import CallError, CallFailureReason
from quotesourcing.models import CallScript

logger = logging.getLogger(__name__)


class VoiceCallClient(Protocol):
    """Places outbound calls; transcripts arrive later through orchestrator events."""

    async def place_call(self, call_id: str, phone_number: str, script: CallScript) -> str:
        """Start a call and return the provider's call id.

        Raises:
            CallError: CONNECT_FAILED if the call could not be started.
        """
        ...

    async def end_call(self, provider_call_id: str) -> None: ...


def render_prompt(script: CallScript) -> str:
    """Flatten a call script into the assistant's system prompt."""
    questions = "\n".join(f"- {q}" for q in script.follow_up_questions)
    return (
        f"{script.instructions}\n\n"
        f"Vehicle: {script.vehicle_identification}\n"
        f"Request: {script.item_request}\n\n"
        f"Follow-up questions:\n{questions}\n\n"
        f"Closing: {script.closing}"
    )


class VapiClient:
    """Vapi REST client (POST /call, DELETE /call/{id})."""

    def __init__(self, config: CallConfig, transport: httpx.AsyncBaseTransport | None = None):
        self.config = config
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.vapi_api_key}",
            "Content-Type": "application/json",
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.config.vapi_base_url, timeout=30.0, transport=self._transport)

    async def place_call(self, call_id: str, phone_number: str, script: CallScript) -> str:
        if not self.config.vapi_api_key or not self.config.vapi_phone_id:
            raise CallError(CallFailureReason.CONNECT_FAILED, "Vapi API key or phone id not configured")

        payload = {
            "phoneNumberId": self.config.vapi_phone_id,
            "customer": {"number": phone_number},
            "assistant": {
                "firstMessage": script.greeting,
                "model": {"messages": [{"role": "system", "content": render_prompt(script)}]},
            },
            "metadata": {"callId": call_id},
        }
        logger.info(f"Placing Vapi call {call_id} to {phone_number}")
        try:
            async with self._client() as client:
                resp = await client.post("/call", json=payload, headers=self._headers())
        except httpx.HTTPError as e:
            raise CallError(CallFailureReason.CONNECT_FAILED, f"Vapi request failed: {e}") from e

        if resp.status_code >= 400:
            logger.error(f"Vapi error {resp.status_code}: {resp.text}")
            raise CallError(CallFailureReason.CONNECT_FAILED, f"Vapi call failed: HTTP {resp.status_code}")
        provider_id = resp.json().get("id")
        if not provider_id:
            raise CallError(CallFailureReason.CONNECT_FAILED, "Vapi response missing call id")
        return provider_id

    async def end_call(self, provider_call_id: str) -> None:
        async with self._client() as client:
            resp = await client.delete(f"/call/{provider_call_id}", headers=self._headers())
        resp.raise_for_status()
