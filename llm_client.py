import logging
from typing import Optional

import requests

from errors import CompletionError, ConfigurationError

logger = logging.getLogger(__name__)

MISSING_KEY_MESSAGE = (
    "PDF parsing requires Groq API key. Please add GROQ_API_KEY to your .env file. "
    "Get a free key at: https://console.groq.com/keys"
)


class CompletionClient:
    """Text completions over an OpenAI-compatible chat-completions endpoint (Groq by default)."""

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "https://api.groq.com/openai/v1",
        model: str = "llama-3.1-8b-instant",
        timeout: float = 60.0,
        temperature: float = 0.1,
        max_tokens: int = 4000,
        session: Optional[requests.Session] = None,
    ):
        if not api_key:
            raise ConfigurationError(MISSING_KEY_MESSAGE)

        self.logger = logging.getLogger(self.__class__.__name__)
        self.api_key = api_key
        self.base_url = base_url.rstrip('/')
        self.model = model
        self.timeout = timeout
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.session = session or requests.Session()

    def complete(self, prompt: str) -> str:
        """
        Send a single-message prompt and return the model's text.

        Raises:
            CompletionError: on transport failure, a non-200 answer, or a
                response without message content. ``retryable`` is set for
                rate limits, oversized payloads, server errors and timeouts.
        """
        try:
            response = self.session.post(
                f"{self.base_url}/chat/completions",
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={
                    "model": self.model,
                    "messages": [{"role": "user", "content": prompt}],
                    "temperature": self.temperature,
                    "max_tokens": self.max_tokens,
                },
                timeout=self.timeout,
            )
        except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as e:
            raise CompletionError(f"Completion request failed: {e}", retryable=True) from e
        except requests.exceptions.RequestException as e:
            raise CompletionError(f"Completion request failed: {e}", retryable=False) from e

        if response.status_code != 200:
            self.logger.error(f"Completion API error: {response.status_code}")
            raise CompletionError(
                f"Completion API error {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            result = response.json()
            return result["choices"][0]["message"]["content"] or ""
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise CompletionError(f"Malformed completion response: {e}", status_code=200, retryable=False) from e
