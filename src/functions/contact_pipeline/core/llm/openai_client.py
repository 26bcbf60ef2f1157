"""
OpenAI client for contact enrichment.

Wraps the three remote operations the pipeline needs:
- web-search research (Responses API with the ``web_search`` tool)
- chat completions for bio generation and thesis extraction
- embeddings for profile vectors

Every call goes through one retry loop with exponential backoff and feeds
the usage statistics reported at the end of a run.
"""

import logging
import os
import threading
import time
from typing import Any, Callable, Dict, List, Optional, TypeVar

from openai import APIConnectionError, APIError, APITimeoutError, OpenAI, RateLimitError

from src.shared.utils.config_validator import ConfigurationError

from ..contracts import AIServiceError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ContactAIClient:
    """Synchronous OpenAI wrapper used by the batch unit processor."""

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        chat_model: str = "gpt-4o-mini",
        research_model: str = "gpt-4o",
        embedding_model: str = "text-embedding-3-small",
        embedding_dimensions: int = 1536,
        timeout: float = 30.0,
        max_retries: int = 3,
        client: Optional[Any] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the client.

        Args:
            api_key: OpenAI API key (falls back to OPENAI_API_KEY)
            chat_model: Model for bio generation and thesis extraction
            research_model: Model for web-search research
            embedding_model: Embedding model name
            embedding_dimensions: Expected embedding vector length
            timeout: Request timeout in seconds
            max_retries: Attempts per request before giving up
            client: Pre-built OpenAI client, mainly for tests
            sleep: Backoff sleep function
        """
        self.chat_model = chat_model
        self.research_model = research_model
        self.embedding_model = embedding_model
        self.embedding_dimensions = embedding_dimensions
        self.max_retries = max_retries
        self._sleep = sleep

        if client is None:
            api_key = api_key or os.getenv("OPENAI_API_KEY")
            if not api_key:
                raise ConfigurationError(
                    "OpenAI API key not found. Set OPENAI_API_KEY in environment or pass to constructor."
                )
            # Retries happen in _call
            client = OpenAI(api_key=api_key, timeout=timeout, max_retries=0)
        self.client = client

        self.total_tokens = 0
        self.total_requests = 0
        self.failed_requests = 0
        self.lock = threading.Lock()

        logger.info(
            "Initialized ContactAIClient: chat=%s research=%s embedding=%s",
            chat_model,
            research_model,
            embedding_model,
        )

    def _call(self, operation: str, func: Callable[[], T]) -> T:
        for attempt in range(self.max_retries):
            try:
                result = func()
                self._count(requests=1)
                return result
            except APITimeoutError as e:
                self._count(failed=1)
                delay = 2 ** attempt
                last_error: Exception = e
            except (RateLimitError, APIConnectionError) as e:
                # Longer wait for throttling and connection issues
                self._count(failed=1)
                delay = 2 ** (attempt + 1)
                last_error = e
            except APIError as e:
                self._count(failed=1)
                delay = 2 ** attempt
                last_error = e

            if attempt < self.max_retries - 1:
                logger.warning(
                    "%s failed (attempt %d/%d): %s. Retrying in %ss...",
                    operation,
                    attempt + 1,
                    self.max_retries,
                    last_error,
                    delay,
                )
                self._sleep(delay)
            else:
                raise AIServiceError(
                    f"{operation} failed after {self.max_retries} attempts: {last_error}"
                ) from last_error

        raise AIServiceError(f"{operation} was not attempted")

    def _count(self, requests: int = 0, failed: int = 0, tokens: int = 0) -> None:
        with self.lock:
            self.total_requests += requests
            self.failed_requests += failed
            self.total_tokens += tokens

    def _track_usage(self, response: Any) -> None:
        usage = getattr(response, "usage", None)
        tokens = getattr(usage, "total_tokens", None)
        if tokens:
            self._count(tokens=int(tokens))

    def web_research(self, system_prompt: str, query: str) -> str:
        """Run a web-search backed Responses API call and return its text."""
        response = self._call(
            "web research",
            lambda: self.client.responses.create(
                model=self.research_model,
                tools=[{"type": "web_search"}],
                tool_choice="auto",
                input=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": query},
                ],
            ),
        )
        self._track_usage(response)
        return (getattr(response, "output_text", None) or "").strip()

    def complete(
        self,
        prompt: str,
        *,
        system_prompt: Optional[str] = None,
        max_tokens: int = 200,
        temperature: float = 0.7,
        json_mode: bool = False,
    ) -> str:
        """Run a chat completion and return the trimmed message content."""
        messages: List[Dict[str, str]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})
        kwargs: Dict[str, Any] = {
            "model": self.chat_model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        response = self._call("chat completion", lambda: self.client.chat.completions.create(**kwargs))
        self._track_usage(response)
        choices = getattr(response, "choices", None) or []
        if not choices:
            return ""
        return (choices[0].message.content or "").strip()

    def embed(self, text: str) -> List[float]:
        """Return the embedding vector for ``text``."""
        if not text or not text.strip():
            raise ValueError("Text cannot be empty")
        response = self._call(
            "embedding",
            lambda: self.client.embeddings.create(
                input=text,
                model=self.embedding_model,
                dimensions=self.embedding_dimensions,
            ),
        )
        self._track_usage(response)
        return list(response.data[0].embedding)

    def get_usage_stats(self) -> dict:
        with self.lock:
            return {
                "total_requests": self.total_requests,
                "failed_requests": self.failed_requests,
                "total_tokens": self.total_tokens,
            }
