"""Relay configuration: YAML defaults overlaid with environment variables."""
from __future__ import annotations
import logging
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, PositiveInt, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from nutricoach_relay.common.schema import TokenTier

LOGGER = logging.getLogger("nutricoach.config")

DEFAULT_CONFIG_PATH = "configs/relay.yaml"
DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-5"
DEFAULT_FALLBACK_MODEL = "gpt-5-mini"

def load_cfg(path: str) -> dict[str, Any]:
    """Read a YAML mapping; a missing file yields an empty config."""
    if not Path(path).exists():
        return {}
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Relay config at {path} must be a mapping")
    return data

class RelayEnv(BaseSettings):
    """Environment overrides. Unset variables stay None and leave the YAML value alone."""
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    config_path: str = Field(DEFAULT_CONFIG_PATH, alias="RELAY_CONFIG")

    # secrets: environment only
    api_key: Optional[str] = Field(None, alias="OPENAI_API_KEY")
    shared_secret: Optional[str] = Field(None, alias="FAMILY_SECRET")

    base_url: Optional[str] = Field(None, alias="OPENAI_BASE_URL")
    streaming: Optional[str] = Field(None, alias="RELAY_STREAMING")
    default_model: Optional[str] = Field(None, alias="RELAY_DEFAULT_MODEL")
    fallback_model: Optional[str] = Field(None, alias="RELAY_FALLBACK_MODEL")
    temperature: Optional[str] = Field(None, alias="RELAY_TEMPERATURE")
    max_tokens: Optional[str] = Field(None, alias="RELAY_MAX_TOKENS")
    timeout: Optional[str] = Field(None, alias="RELAY_TIMEOUT")
    system_prompt_path: Optional[str] = Field(None, alias="SYSTEM_PROMPT_PATH")

    def overrides(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True, exclude={"config_path"})

class RelaySettings(BaseModel):
    """Everything one relay handler needs. Secrets are injected, never read ad hoc."""
    api_key: Optional[str] = None
    shared_secret: Optional[str] = None
    base_url: str = DEFAULT_BASE_URL
    streaming: bool = True
    default_model: str = Field(DEFAULT_MODEL, min_length=1)
    fallback_model: Optional[str] = DEFAULT_FALLBACK_MODEL
    temperature: Optional[float] = Field(0.7, ge=0.0, le=1.0)
    top_p: Optional[float] = Field(None, gt=0.0, le=1.0)
    frequency_penalty: Optional[float] = Field(None, allow_inf_nan=False)
    presence_penalty: Optional[float] = Field(None, allow_inf_nan=False)
    max_tokens: Optional[PositiveInt] = None
    token_tiers: tuple[TokenTier, ...] = ()
    timeout: float = Field(120.0, gt=0.0)
    system_prompt_path: Optional[str] = "configs/system_prompt.txt"

    @field_validator(
        "api_key",
        "shared_secret",
        "fallback_model",
        "temperature",
        "top_p",
        "frequency_penalty",
        "presence_penalty",
        "max_tokens",
        "system_prompt_path",
        mode="before",
    )
    @classmethod
    def _blank_is_unset(cls, value: Any) -> Any:
        # RELAY_FALLBACK_MODEL= (empty) disables the fallback
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value

    @field_validator("token_tiers", mode="before")
    @classmethod
    def _no_tiers(cls, value: Any) -> Any:
        return () if value is None else value

    @property
    def require_secret(self) -> bool:
        return bool(self.shared_secret)

    @property
    def completions_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/chat/completions"

    @classmethod
    def from_env(cls, config_path: Optional[str] = None) -> "RelaySettings":
        """
        Build settings from ``configs/relay.yaml`` (or RELAY_CONFIG), then apply env overrides.

        Secrets (OPENAI_API_KEY, FAMILY_SECRET) only ever come from the environment.
        Raises pydantic.ValidationError naming the offending key on bad values.
        """
        env = RelayEnv()
        cfg = load_cfg(config_path or env.config_path)
        cfg.pop("api_key", None)
        cfg.pop("shared_secret", None)

        settings = cls.model_validate({**cfg, **env.overrides()})
        LOGGER.info(
            "Relay configured: streaming=%s default_model=%s fallback_model=%s tiers=%d secret=%s",
            settings.streaming,
            settings.default_model,
            settings.fallback_model,
            len(settings.token_tiers),
            "on" if settings.require_secret else "off",
        )
        return settings
