"""Pydantic models and dataclasses for request/response types."""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Optional, Union

import httpx
from pydantic import BaseModel, ConfigDict, Field, PositiveInt, field_validator

class ChatRequest(BaseModel):
    """Inbound chat body. Tuning fields stay raw; the composer range-checks them."""
    messages: list[Any]
    model: Optional[str] = None
    temperature: Any = None
    top_p: Any = None
    frequency_penalty: Any = None
    presence_penalty: Any = None

    @field_validator("model", mode="before")
    @classmethod
    def _blank_model_is_absent(cls, value: Any) -> Optional[str]:
        if isinstance(value, str) and value.strip():
            return value.strip()
        return None

class TokenTier(BaseModel):
    """Keyword trigger that raises the token budget."""
    model_config = ConfigDict(frozen=True)

    keywords: tuple[str, ...] = Field(min_length=1)
    max_tokens: PositiveInt

    @field_validator("keywords", mode="before")
    @classmethod
    def _normalise_keywords(cls, value: Any) -> Any:
        # a bare YAML scalar is one keyword, not a sequence of letters
        if isinstance(value, str):
            value = [value]
        if isinstance(value, (list, tuple)):
            return tuple(str(k).strip().lower() for k in value if str(k).strip())
        return value

@dataclass
class GenerationConfig:
    """Resolved model and sampling parameters for one upstream call."""
    model: str
    temperature: Optional[float]
    max_tokens: Optional[int] = None
    top_p: Optional[float] = None
    frequency_penalty: Optional[float] = None
    presence_penalty: Optional[float] = None

    def sampling_params(self) -> dict[str, Any]:
        """Non-empty generation knobs, as sent upstream."""
        params = {
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "top_p": self.top_p,
            "frequency_penalty": self.frequency_penalty,
            "presence_penalty": self.presence_penalty,
        }
        return {k: v for k, v in params.items() if v is not None}

@dataclass
class UpstreamSuccess:
    """Open upstream response; streaming bodies have not been read yet."""
    model: str
    response: httpx.Response
    attempts: list[str] = field(default_factory=list)
    client: Optional[httpx.AsyncClient] = None

    async def aclose(self) -> None:
        await self.response.aclose()
        if self.client is not None:
            await self.client.aclose()

@dataclass
class UpstreamFailure:
    status: int
    message: str
    model: str
    attempts: list[str] = field(default_factory=list)

UpstreamOutcome = Union[UpstreamSuccess, UpstreamFailure]

class ChatReply(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    model_used: str
    reply: str

class ErrorBody(BaseModel):
    error: str
    status: int | None = None
    detail: str | None = None
    hint: str | None = None

class HealthOut(BaseModel):
    status: str
    model: str
    streaming: bool
