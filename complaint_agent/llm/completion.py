"""
Completion service clients.

The conversation core only ever asks for a JSON object matching a
schema. How that object is produced (hosted model, local keyword
matcher, test double) is hidden behind the CompletionService protocol.
"""

import asyncio
import json
import logging
from typing import Any, Optional, Protocol

import openai
from openai import AsyncOpenAI

from complaint_agent.config import settings
from complaint_agent.errors import CompletionUnavailable

logger = logging.getLogger(__name__)


class CompletionService(Protocol):
    """Returns one JSON object constrained by ``schema``."""

    async def complete_json(
        self,
        *,
        system: str,
        user: str,
        schema: dict[str, Any],
        name: str,
        temperature: float = settings.model.llm_temperature,
    ) -> dict[str, Any]: ...


class OpenAICompletionService:
    """Structured-output completions through the OpenAI chat API."""

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        model: str = settings.model.llm_model,
        timeout_sec: float = settings.model.request_timeout_sec,
    ) -> None:
        self._client = client or AsyncOpenAI(
            api_key=settings.model.api_key or None,
            base_url=settings.model.base_url or None,
            timeout=timeout_sec,
            max_retries=0,
        )
        self._model = model
        self._timeout = timeout_sec

    async def complete_json(
        self,
        *,
        system: str,
        user: str,
        schema: dict[str, Any],
        name: str,
        temperature: float = settings.model.llm_temperature,
    ) -> dict[str, Any]:
        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(
                    model=self._model,
                    messages=[
                        {"role": "system", "content": system},
                        {"role": "user", "content": user},
                    ],
                    temperature=temperature,
                    response_format={
                        "type": "json_schema",
                        "json_schema": {"name": name, "schema": schema},
                    },
                ),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            raise CompletionUnavailable(f"{name} timed out after {self._timeout}s") from None
        except openai.APIStatusError as exc:
            retryable = exc.status_code == 429 or exc.status_code >= 500
            raise CompletionUnavailable(
                f"{name} failed with HTTP {exc.status_code}", retryable=retryable
            ) from exc
        except openai.APIError as exc:
            raise CompletionUnavailable(f"{name} failed: {type(exc).__name__}") from exc

        content = response.choices[0].message.content if response.choices else None
        try:
            data = json.loads(content or "")
        except json.JSONDecodeError:
            raise CompletionUnavailable(f"{name} returned invalid JSON", retryable=False) from None
        if not isinstance(data, dict):
            raise CompletionUnavailable(f"{name} returned a non-object payload", retryable=False)
        return data


class RetryingCompletionService:
    """Retries transient failures of another completion service with exponential backoff."""

    def __init__(
        self,
        inner: CompletionService,
        max_attempts: int = settings.retry.max_attempts,
        backoff_base_sec: float = settings.retry.backoff_base_sec,
    ) -> None:
        self._inner = inner
        self._max_attempts = max_attempts
        self._backoff_base = backoff_base_sec

    async def complete_json(self, **kwargs: Any) -> dict[str, Any]:
        attempt = 1
        while True:
            try:
                return await self._inner.complete_json(**kwargs)
            except CompletionUnavailable as exc:
                if not exc.retryable or attempt >= self._max_attempts:
                    logger.warning(
                        "Completion '%s' gave up after %d attempt(s): %s",
                        kwargs.get("name"), attempt, exc,
                    )
                    raise
                delay = self._backoff_base * (2 ** (attempt - 1))
                logger.info(
                    "Completion '%s' failed (attempt %d/%d), retrying in %.2fs",
                    kwargs.get("name"), attempt, self._max_attempts, delay,
                )
                await asyncio.sleep(delay)
                attempt += 1
