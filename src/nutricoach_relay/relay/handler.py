"""The chat relay pipeline.

validate -> gate -> check config -> compose -> dispatch -> relay.
Each step raises a RelayError subclass on failure; the app's exception
handlers turn those into JSON.
"""
from __future__ import annotations
import logging

import httpx
from fastapi import Request, Response

from nutricoach_relay.common.config import RelaySettings
from nutricoach_relay.common.schema import UpstreamFailure
from nutricoach_relay.relay.access import SECRET_HEADER, check_shared_secret
from nutricoach_relay.relay.composer import compose_messages, resolve_generation_config
from nutricoach_relay.relay.errors import ConfigurationError, UpstreamError
from nutricoach_relay.relay.responses import json_reply, stream_response
from nutricoach_relay.relay.upstream import UpstreamDispatcher
from nutricoach_relay.relay.validation import ensure_post, parse_chat_request

LOGGER = logging.getLogger("nutricoach.relay")

class ChatRelay:
    def __init__(
        self,
        settings: RelaySettings,
        system_prompt: str,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings
        self.system_prompt = system_prompt
        self.dispatcher = UpstreamDispatcher(settings, transport=transport)

    async def handle(self, request: Request) -> Response:
        ensure_post(request.method)
        chat = parse_chat_request(await request.body())
        check_shared_secret(self.settings.shared_secret, request.headers.get(SECRET_HEADER))
        if not self.settings.api_key:
            raise ConfigurationError("Server is missing OPENAI_API_KEY.")

        config = resolve_generation_config(chat, self.settings)
        messages = compose_messages(self.system_prompt, chat.messages)
        LOGGER.info(
            "Relaying %d turns to model=%s max_tokens=%s stream=%s",
            len(chat.messages),
            config.model,
            config.max_tokens,
            self.settings.streaming,
        )

        outcome = await self.dispatcher.dispatch(messages, config, stream=self.settings.streaming)
        if isinstance(outcome, UpstreamFailure):
            LOGGER.warning("No model answered; tried %s", " -> ".join(outcome.attempts))
            raise UpstreamError.from_failure(outcome)
        if len(outcome.attempts) > 1:
            LOGGER.info("Served by fallback model %s; tried %s", outcome.model, " -> ".join(outcome.attempts))
        if self.settings.streaming:
            return stream_response(outcome)
        return json_reply(outcome)
