"""Relay of successful upstream responses back to the caller."""
from __future__ import annotations
import logging
from typing import Any, AsyncIterable, AsyncIterator

import anyio
import httpx
from fastapi.responses import JSONResponse, StreamingResponse

from nutricoach_relay.common.schema import ChatReply, UpstreamSuccess
from nutricoach_relay.relay.errors import UpstreamError

LOGGER = logging.getLogger("nutricoach.relay.responses")

FALLBACK_REPLY = "Sorry, I couldn't generate a response."

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
}

async def pump(source: AsyncIterable[bytes]) -> AsyncIterator[bytes]:
    """Forward each chunk as soon as it arrives, in arrival order."""
    async for chunk in source:
        if chunk:
            yield chunk

async def relay_stream(outcome: UpstreamSuccess) -> AsyncIterator[bytes]:
    """
    Pass the upstream event stream through untouched.

    Headers are already committed once the first chunk is out, so failures
    here can only end the stream. The upstream response and its client are
    released however the stream ends, including client disconnects.
    """
    try:
        async for chunk in pump(outcome.response.aiter_bytes()):
            yield chunk
    except httpx.HTTPError as e:
        LOGGER.warning("Upstream stream for model=%s ended early: %s", outcome.model, e)
    except Exception:
        LOGGER.exception("Unexpected error while relaying stream for model=%s", outcome.model)
    finally:
        with anyio.CancelScope(shield=True):
            await outcome.aclose()

def stream_response(outcome: UpstreamSuccess) -> StreamingResponse:
    return StreamingResponse(
        relay_stream(outcome),
        media_type="text/event-stream",
        headers={**SSE_HEADERS, "X-Model-Used": outcome.model},
    )

def _first_reply(data: Any) -> str:
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        return FALLBACK_REPLY
    if isinstance(content, str) and content.strip():
        return content
    return FALLBACK_REPLY

def json_reply(outcome: UpstreamSuccess) -> JSONResponse:
    try:
        data = outcome.response.json()
    except ValueError as e:
        LOGGER.error("Malformed upstream response for model=%s: %s", outcome.model, e)
        raise UpstreamError(outcome.response.status_code, "Malformed upstream response", outcome.model) from e

    reported = data.get("model") if isinstance(data, dict) else None
    model_used = reported if isinstance(reported, str) and reported else outcome.model
    body = ChatReply(model_used=model_used, reply=_first_reply(data))
    return JSONResponse(status_code=200, content=body.model_dump())
