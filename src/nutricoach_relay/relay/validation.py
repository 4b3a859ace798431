"""Inbound request validation."""
from __future__ import annotations

import pydantic

from nutricoach_relay.common.schema import ChatRequest
from nutricoach_relay.relay.errors import MethodNotAllowed, ValidationError

INVALID_JSON = "Invalid JSON body."
INVALID_MESSAGES = "`messages` must be an array of chat turns."

def ensure_post(method: str) -> None:
    if method.upper() != "POST":
        raise MethodNotAllowed()

def parse_chat_request(raw: bytes) -> ChatRequest:
    """
    Build a ChatRequest from a raw JSON body, which can only be read once.

    ``messages`` must be a JSON array (it may be empty). Tuning values are kept
    as sent; range checks happen when the generation config is resolved.
    """
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ValidationError(INVALID_JSON) from e
    try:
        return ChatRequest.model_validate_json(text)
    except pydantic.ValidationError as e:
        if any(err["type"] == "json_invalid" for err in e.errors()):
            raise ValidationError(INVALID_JSON) from e
        raise ValidationError(INVALID_MESSAGES) from e
