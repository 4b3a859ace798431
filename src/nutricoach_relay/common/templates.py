"""Persona prompt helpers."""
from __future__ import annotations
from pathlib import Path

DEFAULT_SYSTEM_PROMPT = (
    "You are a supportive, practical nutrition coach. Help the user plan meals that "
    "meet daily calorie and macro goals. Use common, affordable foods; provide swaps "
    "and grocery tips; ask brief clarifying questions only when truly necessary."
)

def load_template(path: str = "configs/system_prompt.txt") -> str:
    """
    Load a persona prompt file.

    Args:
        path: Path to the prompt text.
    """
    return Path(path).read_text(encoding="utf-8")

def resolve_system_prompt(path: str | None) -> str:
    """
    Return the persona text stored at ``path``.

    Falls back to the built-in coach persona when no path is given, the file
    cannot be read, or it only contains whitespace.
    """
    if not path:
        return DEFAULT_SYSTEM_PROMPT
    try:
        text = load_template(path).strip()
    except OSError:
        return DEFAULT_SYSTEM_PROMPT
    return text or DEFAULT_SYSTEM_PROMPT

def system_message(prompt: str) -> dict[str, str]:
    return {"role": "system", "content": prompt}
