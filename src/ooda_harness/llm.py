# llm.py
# Model collaborator: rendered messages in, completion text out.
#
# The harness depends only on the ModelClient protocol. OpenAIModel is the
# production implementation against any OpenAI-compatible endpoint.

from typing import Protocol

import openai
from openai import OpenAI

from ooda_harness.errors import UpstreamUnavailable

# Errors the SDK retries before giving up. Anything else is terminal.
TRANSIENT_ERRORS: tuple[type[Exception], ...] = (
    openai.APIConnectionError,  # includes APITimeoutError
    openai.RateLimitError,
    openai.InternalServerError,
)


class ModelClient(Protocol):
    def complete(self, messages: list[dict[str, str]]) -> str: ...


class OpenAIModel:
    """
    Chat-completions client.

    Retries with exponential backoff are left to the openai SDK
    (`max_retries`). Whatever error survives them becomes UpstreamUnavailable.
    """

    def __init__(
        self,
        model: str,
        api_key: str | None,
        base_url: str | None = None,
        temperature: float = 0.0,
        max_retries: int = 3,
        request_timeout: float = 60.0,
        client: OpenAI | None = None,
    ) -> None:
        self._model = model
        self._temperature = temperature
        self._client = client or OpenAI(
            base_url=base_url,
            api_key=api_key,
            max_retries=max_retries,
            timeout=request_timeout,
        )

    @property
    def model(self) -> str:
        return self._model

    def complete(self, messages: list[dict[str, str]]) -> str:
        try:
            response = self._client.chat.completions.create(
                model=self._model,
                messages=messages,
                temperature=self._temperature,
            )
        except TRANSIENT_ERRORS as exc:
            raise UpstreamUnavailable(f"Model unavailable: {exc}", transient=True) from exc
        except openai.OpenAIError as exc:
            raise UpstreamUnavailable(f"Model request rejected: {exc}", transient=False) from exc

        if not response.choices or response.choices[0].message.content is None:
            raise UpstreamUnavailable("Model returned no completion.", transient=False)
        return response.choices[0].message.content.strip()
