"""Outbound prompt and generation-parameter resolution."""
from __future__ import annotations
import math
from typing import Any, Iterable, Optional, Sequence

from nutricoach_relay.common.config import RelaySettings
from nutricoach_relay.common.schema import ChatRequest, GenerationConfig, TokenTier
from nutricoach_relay.common.templates import system_message

def compose_messages(system_prompt: str, messages: Sequence[Any]) -> list[Any]:
    """Persona first, then the caller's turns untouched (including any system turns)."""
    return [system_message(system_prompt), *messages]

def _number(value: Any) -> Optional[float]:
    # bool is an int subclass but never a valid tuning value
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        return None
    return float(value)

def pick_temperature(value: Any, default: Optional[float]) -> Optional[float]:
    num = _number(value)
    return num if num is not None and 0.0 <= num <= 1.0 else default

def pick_top_p(value: Any, default: Optional[float]) -> Optional[float]:
    num = _number(value)
    return num if num is not None and 0.0 < num <= 1.0 else default

def pick_penalty(value: Any, default: Optional[float]) -> Optional[float]:
    num = _number(value)
    return num if num is not None else default

def conversation_text(messages: Iterable[Any]) -> str:
    """Lowercased text of every string ``content`` in the conversation."""
    parts = []
    for m in messages:
        content = m.get("content") if isinstance(m, dict) else None
        if isinstance(content, str):
            parts.append(content)
    return "\n".join(parts).lower()

def token_budget(messages: Iterable[Any], base: Optional[int], tiers: Sequence[TokenTier]) -> Optional[int]:
    """
    Escalate ``base`` through keyword tiers.

    Tiers are checked in order and the largest budget reached is kept, so a
    broader tier firing alongside a narrower one can only raise the budget.
    This is an English keyword heuristic, nothing more.
    """
    text = conversation_text(messages)
    budget = base
    for tier in tiers:
        if any(k in text for k in tier.keywords):
            budget = tier.max_tokens if budget is None else max(budget, tier.max_tokens)
    return budget

def resolve_generation_config(req: ChatRequest, settings: RelaySettings) -> GenerationConfig:
    return GenerationConfig(
        model=req.model or settings.default_model,
        temperature=pick_temperature(req.temperature, settings.temperature),
        max_tokens=token_budget(req.messages, settings.max_tokens, settings.token_tiers),
        top_p=pick_top_p(req.top_p, settings.top_p),
        frequency_penalty=pick_penalty(req.frequency_penalty, settings.frequency_penalty),
        presence_penalty=pick_penalty(req.presence_penalty, settings.presence_penalty),
    )
