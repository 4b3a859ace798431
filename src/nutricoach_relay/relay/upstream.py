"""Upstream dispatch to the OpenAI-compatible completion API."""
from __future__ import annotations
import json
import logging
from typing import Any, Optional, Sequence

import httpx

from nutricoach_relay.common.config import RelaySettings
from nutricoach_relay.common.schema import (
    GenerationConfig,
    UpstreamFailure,
    UpstreamOutcome,
    UpstreamSuccess,
)
from nutricoach_relay.relay.errors import TRANSPORT_FAILURE_STATUS

LOGGER = logging.getLogger("nutricoach.relay.upstream")

# Statuses meaning "this model is not available to us"; worth one try on the fallback.
FALLBACK_STATUSES = frozenset({401, 403, 404})

def _message_from_json(obj: Any) -> Optional[str]:
    if not isinstance(obj, dict):
        return None
    # OpenAI: {"error": {"message": "..."}}
    err = obj.get("error")
    if isinstance(err, dict):
        msg = err.get("message")
        if isinstance(msg, str) and msg.strip():
            return msg.strip()
    if isinstance(err, str) and err.strip():
        return err.strip()
    for key in ("message", "detail"):
        msg = obj.get(key)
        if isinstance(msg, str) and msg.strip():
            return msg.strip()
    return None

def extract_error_message(raw: bytes, fallback: str = "") -> str:
    """
    Pull a human-readable message out of an error body.

    JSON bodies yield their ``error.message`` (or ``message``/``detail``); any
    other body is returned as stripped text.
    """
    text = raw.decode("utf-8", errors="replace").strip()
    if not text:
        return fallback
    try:
        parsed = json.loads(text)
    except ValueError:
        return text
    return _message_from_json(parsed) or text

async def read_failure_message(response: httpx.Response) -> str:
    """Read the failure body exactly once and summarise it."""
    try:
        raw = await response.aread()
    except httpx.HTTPError as e:
        return f"Failed to read upstream error body: {e}"
    return extract_error_message(raw, fallback=response.reason_phrase)

def _empty_stream(response: httpx.Response) -> bool:
    return response.status_code == 204 or response.headers.get("content-length") == "0"

class UpstreamDispatcher:
    """
    Sends one chat completion call, plus at most one retry on the fallback model.

    Args:
        settings: Relay settings (API key, base URL, fallback model, timeout).
        transport: Optional httpx transport, used by tests to fake the provider.
    """

    def __init__(self, settings: RelaySettings, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.settings = settings
        self.transport = transport

    def build_payload(self, messages: Sequence[Any], config: GenerationConfig, model: str, stream: bool) -> dict[str, Any]:
        return {
            "model": model,
            "messages": list(messages),
            "stream": stream,
            **config.sampling_params(),
        }

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.settings.api_key}",
            "Content-Type": "application/json",
        }

    def _should_fall_back(self, failure: UpstreamFailure) -> bool:
        fallback = self.settings.fallback_model
        return bool(fallback) and failure.status in FALLBACK_STATUSES and failure.model != fallback

    async def dispatch(self, messages: Sequence[Any], config: GenerationConfig, stream: bool) -> UpstreamOutcome:
        outcome = await self._attempt(messages, config, config.model, stream)
        attempts = [config.model]
        if isinstance(outcome, UpstreamFailure) and self._should_fall_back(outcome):
            fallback = self.settings.fallback_model
            LOGGER.warning(
                "Model %s unavailable (status=%s); retrying once with %s",
                outcome.model,
                outcome.status,
                fallback,
            )
            outcome = await self._attempt(messages, config, fallback, stream)
            attempts.append(fallback)
        outcome.attempts = attempts
        return outcome

    async def _attempt(self, messages: Sequence[Any], config: GenerationConfig, model: str, stream: bool) -> UpstreamOutcome:
        payload = self.build_payload(messages, config, model, stream)
        client = httpx.AsyncClient(timeout=self.settings.timeout, transport=self.transport)
        try:
            request = client.build_request(
                "POST", self.settings.completions_url, headers=self._headers(), json=payload
            )
            response = await client.send(request, stream=stream)
        except httpx.HTTPError as e:
            await client.aclose()
            LOGGER.error("Upstream request for model=%s failed: %s", model, e)
            return UpstreamFailure(
                status=TRANSPORT_FAILURE_STATUS,
                message=f"Could not reach the completion provider ({type(e).__name__}).",
                model=model,
            )
        except Exception:
            await client.aclose()
            raise

        if response.is_success and not (stream and _empty_stream(response)):
            if stream:
                # Ownership of the client passes to the stream relay.
                return UpstreamSuccess(model=model, response=response, client=client)
            await client.aclose()
            return UpstreamSuccess(model=model, response=response)

        try:
            if response.is_success:
                message = "Upstream returned an empty stream."
            else:
                message = await read_failure_message(response)
        finally:
            await response.aclose()
            await client.aclose()
        LOGGER.warning("Upstream model=%s answered %s: %s", model, response.status_code, message)
        return UpstreamFailure(status=response.status_code, message=message, model=model)
