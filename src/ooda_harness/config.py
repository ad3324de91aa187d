# config.py
# Runtime settings. Read once at start-up and passed explicitly from there on.

import os
from typing import Mapping

from dotenv import load_dotenv
from pydantic import BaseModel, Field

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_MODEL = "openai/gpt-4o-mini"

# env var -> Settings field
_ENV_FIELDS = {
    "OODA_BASE_URL": "base_url",
    "OODA_MODEL": "model",
    "OODA_TEMPERATURE": "temperature",
    "OODA_MAX_ROUNDS": "max_rounds",
    "OODA_MAX_RETRIES": "max_retries",
    "OODA_REQUEST_TIMEOUT": "request_timeout",
    "OODA_MAX_RESULT_CHARS": "max_result_chars",
    "OODA_SANDBOX_TIMEOUT": "sandbox_timeout",
    "OODA_SANDBOX_MEMORY_MB": "sandbox_memory_mb",
    "OODA_SANDBOX_MAX_OUTPUT": "sandbox_max_output",
    "HUE_BRIDGE_IP": "hue_bridge_ip",
    "HUE_USERNAME": "hue_username",
}


class Settings(BaseModel):
    """Everything a session needs to be wired up."""

    api_key: str | None = None
    base_url: str = DEFAULT_BASE_URL
    model: str = DEFAULT_MODEL
    temperature: float = Field(default=0.0, ge=0.0, le=2.0)

    max_rounds: int = Field(default=10, ge=1, description="Model calls allowed per session.")
    max_retries: int = Field(default=3, ge=0)
    request_timeout: float = Field(default=60.0, gt=0.0)
    max_result_chars: int = Field(default=2048, ge=1)

    sandbox_timeout: float = Field(default=5.0, gt=0.0)
    sandbox_memory_mb: int = Field(default=512, ge=64)
    sandbox_max_output: int = Field(default=16384, ge=1)

    hue_bridge_ip: str | None = None
    hue_username: str | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """
        Build settings from the environment (after loading .env).

        Unset or empty variables keep their defaults; values are validated
        by pydantic.
        """
        if environ is None:
            load_dotenv()
            environ = os.environ

        values: dict[str, str] = {}
        api_key = environ.get("OPENROUTER_API_KEY") or environ.get("OPENAI_API_KEY")
        if api_key:
            values["api_key"] = api_key
        for var, field in _ENV_FIELDS.items():
            raw = environ.get(var)
            if raw:
                values[field] = raw
        return cls.model_validate(values)
