from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from nutricoach_relay.common.config import RelaySettings, load_cfg
from nutricoach_relay.common.schema import TokenTier
from nutricoach_relay.relay.composer import token_budget

_ENV = (
    "OPENAI_API_KEY", "FAMILY_SECRET", "OPENAI_BASE_URL", "RELAY_STREAMING", "RELAY_DEFAULT_MODEL",
    "RELAY_FALLBACK_MODEL", "RELAY_TEMPERATURE", "RELAY_MAX_TOKENS", "RELAY_TIMEOUT", "SYSTEM_PROMPT_PATH",
    "RELAY_CONFIG",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV:
        monkeypatch.delenv(name, raising=False)


def _write(tmp_path: Path, text: str) -> str:
    path = tmp_path / "relay.yaml"
    path.write_text(text, encoding="utf-8")
    return str(path)


def test_defaults_without_config_file(tmp_path: Path) -> None:
    settings = RelaySettings.from_env(str(tmp_path / "missing.yaml"))
    assert settings.api_key is None
    assert settings.require_secret is False
    assert settings.streaming is True
    assert settings.default_model == "gpt-5"
    assert settings.fallback_model == "gpt-5-mini"
    assert settings.completions_url == "https://api.openai.com/v1/chat/completions"


def test_yaml_then_env_overrides(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = _write(
        tmp_path,
        "streaming: false\n"
        "default_model: gpt-4o\n"
        "max_tokens: 600\n"
        "token_tiers:\n"
        "  - keywords: [Recipe]\n"
        "    max_tokens: 1200\n",
    )
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
    monkeypatch.setenv("FAMILY_SECRET", "hunter2")
    monkeypatch.setenv("RELAY_DEFAULT_MODEL", "gpt-5")
    monkeypatch.setenv("RELAY_FALLBACK_MODEL", "")

    settings = RelaySettings.from_env(path)
    assert settings.streaming is False
    assert settings.default_model == "gpt-5"
    assert settings.fallback_model is None
    assert settings.max_tokens == 600
    assert settings.token_tiers == (TokenTier(keywords=("recipe",), max_tokens=1200),)
    assert settings.api_key == "sk-env"
    assert settings.require_secret is True


def test_streaming_env_flag(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RELAY_STREAMING", "0")
    assert RelaySettings.from_env(str(tmp_path / "missing.yaml")).streaming is False


def test_repo_config_tiers_are_ordered_by_budget() -> None:
    tiers = RelaySettings.model_validate(load_cfg("configs/relay.yaml")).token_tiers
    budgets = [t.max_tokens for t in tiers]
    assert budgets == sorted(budgets)
    assert any("weekly" in t.keywords for t in tiers)


def test_non_mapping_config_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        load_cfg(_write(tmp_path, "- just\n- a list\n"))


def test_null_temperature_means_no_temperature(tmp_path: Path) -> None:
    settings = RelaySettings.from_env(_write(tmp_path, "temperature: null\n"))
    assert settings.temperature is None


def test_numeric_strings_are_coerced(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RELAY_MAX_TOKENS", "1200")
    settings = RelaySettings.from_env(_write(tmp_path, "top_p: '0.9'\nfrequency_penalty: '0.5'\n"))
    assert settings.top_p == 0.9
    assert isinstance(settings.top_p, float)
    assert settings.frequency_penalty == 0.5
    assert settings.max_tokens == 1200


@pytest.mark.parametrize(
    "text, field",
    [
        ("temperature: 1.5\n", "temperature"),
        ("top_p: 0\n", "top_p"),
        ("top_p: lots\n", "top_p"),
        ("presence_penalty: .nan\n", "presence_penalty"),
        ("streaming: maybe\n", "streaming"),
        ("max_tokens: -5\n", "max_tokens"),
        ("timeout: 0\n", "timeout"),
    ],
)
def test_bad_values_are_rejected_by_name(tmp_path: Path, text: str, field: str) -> None:
    with pytest.raises(ValidationError, match=field):
        RelaySettings.from_env(_write(tmp_path, text))


def test_bad_env_value_is_rejected(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RELAY_TEMPERATURE", "hot")
    with pytest.raises(ValidationError, match="temperature"):
        RelaySettings.from_env(str(tmp_path / "missing.yaml"))


def test_scalar_keywords_are_one_keyword(tmp_path: Path) -> None:
    path = _write(tmp_path, "max_tokens: 800\ntoken_tiers:\n  - keywords: Weekly\n    max_tokens: 3200\n")
    settings = RelaySettings.from_env(path)
    assert settings.token_tiers == (TokenTier(keywords=("weekly",), max_tokens=3200),)
    hello = [{"role": "user", "content": "hello"}]
    assert token_budget(hello, settings.max_tokens, settings.token_tiers) == 800


def test_tier_without_budget_is_named(tmp_path: Path) -> None:
    path = _write(tmp_path, "token_tiers:\n  - keywords: [recipe]\n    max_tokens: 1400\n  - keywords: [week]\n")
    with pytest.raises(ValidationError, match=r"token_tiers\.1\.max_tokens"):
        RelaySettings.from_env(path)


def test_tier_without_keywords_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValidationError, match="keywords"):
        RelaySettings.from_env(_write(tmp_path, "token_tiers:\n  - keywords: []\n    max_tokens: 900\n"))


def test_secrets_in_yaml_are_ignored(tmp_path: Path) -> None:
    settings = RelaySettings.from_env(_write(tmp_path, "api_key: sk-from-file\nshared_secret: nope\n"))
    assert settings.api_key is None
    assert settings.require_secret is False
