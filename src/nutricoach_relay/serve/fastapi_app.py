"""FastAPI app for the nutrition-coach chat relay.

Endpoints:
- GET /health
- POST /api/chat  { "messages": [...], "model"?: "...", "temperature"?: ... }
"""
from __future__ import annotations
import logging
from pathlib import Path

import httpx
from fastapi import FastAPI, Request, Response

from nutricoach_relay.common.config import RelaySettings
from nutricoach_relay.common.logging_setup import setup_logging
from nutricoach_relay.common.schema import HealthOut
from nutricoach_relay.common.templates import resolve_system_prompt
from nutricoach_relay.relay.errors import RelayError, relay_error_handler, unexpected_error_handler
from nutricoach_relay.relay.handler import ChatRelay

LOGGER = logging.getLogger("nutricoach.app")
setup_logging()

# Every method is routed to the handler so non-POST calls get the relay's own 405 body.
CHAT_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]

def create_app(
    settings: RelaySettings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """
    Build the relay app.

    Args:
        settings: Relay settings; read from the environment when omitted.
        transport: Optional httpx transport for the upstream provider.
    """
    settings = settings or RelaySettings.from_env()
    system_prompt = resolve_system_prompt(settings.system_prompt_path)
    relay = ChatRelay(settings, system_prompt, transport=transport)

    app = FastAPI(title="NutriCoach Relay")
    app.state.settings = settings
    app.add_exception_handler(RelayError, relay_error_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)

    @app.on_event("startup")
    def _check_configuration_on_startup() -> None:
        """Warn about configuration that will make every chat call fail or degrade."""
        path = settings.system_prompt_path
        if not path or not Path(path).is_file():
            LOGGER.warning("System prompt file %s not found; using built-in persona", path)
        if not settings.api_key:
            LOGGER.warning("OPENAI_API_KEY is not set; /api/chat will answer 500")

    @app.get("/health", response_model=HealthOut)
    def health() -> HealthOut:
        return HealthOut(status="ok", model=settings.default_model, streaming=settings.streaming)

    @app.api_route("/api/chat", methods=CHAT_METHODS)
    async def chat(request: Request) -> Response:
        return await relay.handle(request)

    return app

app = create_app()
