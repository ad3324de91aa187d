import pytest
from pydantic import ValidationError

from ooda_harness.config import DEFAULT_MODEL, Settings


def test_defaults():
    settings = Settings.from_env({})
    assert settings.model == DEFAULT_MODEL
    assert settings.max_rounds == 10
    assert settings.max_result_chars == 2048
    assert settings.api_key is None
    assert settings.hue_username is None


def test_values_from_environment():
    settings = Settings.from_env({
        "OPENROUTER_API_KEY": "sk-or-test",
        "OODA_MODEL": "anthropic/claude-3.5-haiku",
        "OODA_MAX_ROUNDS": "4",
        "OODA_SANDBOX_TIMEOUT": "2.5",
        "HUE_USERNAME": "",
    })
    assert settings.api_key == "sk-or-test"
    assert settings.model == "anthropic/claude-3.5-haiku"
    assert settings.max_rounds == 4
    assert settings.sandbox_timeout == 2.5
    assert settings.hue_username is None


def test_openai_key_fallback():
    assert Settings.from_env({"OPENAI_API_KEY": "sk-test"}).api_key == "sk-test"


def test_invalid_values_are_rejected():
    with pytest.raises(ValidationError):
        Settings.from_env({"OODA_MAX_ROUNDS": "0"})
    with pytest.raises(ValidationError):
        Settings.from_env({"OODA_SANDBOX_TIMEOUT": "soon"})
