"""OpenAI chat-completions adapter used by the generation pipeline.

The adapter exposes a single `generate(prompt, system_prompt)` call and
translates SDK exceptions into `RateLimitError`, `InvalidKeyError` or
`ServiceError` so callers never depend on the SDK's exception types.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol

import openai
from openai import OpenAI

from ..config import settings
from ..errors import InvalidKeyError, RateLimitError, ServiceError

logger = logging.getLogger("quizcraft.llm")


class TextGenerator(Protocol):
    def generate(self, prompt: str, system_prompt: str) -> str:
        ...


class OpenAIClient:
    """Thin wrapper over `openai.OpenAI` with a lazily built client."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 4096,
    ):
        self.api_key = api_key if api_key is not None else settings.OPENAI_API_KEY
        self.model = model or settings.GPT_MODEL
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._client: Optional[OpenAI] = None

    def _get_client(self) -> OpenAI:
        if self._client is None:
            if not self.api_key:
                raise InvalidKeyError("OPENAI_API_KEY is not set")
            self._client = OpenAI(api_key=self.api_key)
        return self._client

    def generate(self, prompt: str, system_prompt: str) -> str:
        """Return the assistant message text ('' when the model sent none)."""
        client = self._get_client()
        try:
            response = client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": prompt},
                ],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except openai.RateLimitError as exc:
            raise RateLimitError(str(exc)) from exc
        except openai.AuthenticationError as exc:
            raise InvalidKeyError(str(exc)) from exc
        except openai.OpenAIError as exc:
            logger.error("generation call failed: %s", exc)
            raise ServiceError(str(exc)) from exc
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""
