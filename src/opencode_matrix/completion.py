"""OpenAI-compatible chat completion client."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any

import httpx

from .config import CompletionSettings
from .errors import CompletionError
from .log import get_logger
from .models.catalog import api_model_id

logger = get_logger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful assistant in a Matrix chat room. "
    "Answer concisely and in the language of the question."
)


@dataclass(frozen=True, slots=True)
class CompletionResult:
    text: str
    model_id: str
    tokens_used: int
    response_time_ms: int


def _extract_text(data: Any) -> str:
    if not isinstance(data, dict):
        raise CompletionError("completion response is not a JSON object")
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        raise CompletionError("completion response has no choices")
    message = choices[0].get("message") if isinstance(choices[0], dict) else None
    content = message.get("content") if isinstance(message, dict) else None
    if not isinstance(content, str) or not content.strip():
        raise CompletionError("completion response has no message content")
    return content.strip()


def _extract_tokens(data: dict[str, Any]) -> int:
    usage = data.get("usage")
    if not isinstance(usage, dict):
        return 0
    total = usage.get("total_tokens")
    return total if isinstance(total, int) and total >= 0 else 0


class CompletionClient:
    """Thin async client for ``POST {api_url}/chat/completions``."""

    def __init__(
        self,
        settings: CompletionSettings,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        if not settings.api_url:
            raise CompletionError("completion api_url is not configured")
        self._settings = settings
        self._endpoint = f"{settings.api_url.rstrip('/')}/chat/completions"
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            timeout=settings.timeout_seconds
        )

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._settings.api_key:
            headers["Authorization"] = f"Bearer {self._settings.api_key}"
        return headers

    async def complete(self, prompt: str, *, model_id: str) -> CompletionResult:
        payload = {
            "model": api_model_id(model_id),
            "messages": [
                {
                    "role": "system",
                    "content": self._settings.system_prompt or DEFAULT_SYSTEM_PROMPT,
                },
                {"role": "user", "content": prompt},
            ],
            "max_tokens": self._settings.max_tokens,
            "temperature": self._settings.temperature,
        }
        started = time.monotonic()
        try:
            response = await self._http.post(
                self._endpoint, json=payload, headers=self._headers()
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as exc:
            raise CompletionError(
                f"completion request failed with HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise CompletionError(f"completion request failed: {exc}") from exc
        except ValueError as exc:
            raise CompletionError("completion response is not valid JSON") from exc

        text = _extract_text(data)
        elapsed_ms = int((time.monotonic() - started) * 1000)
        tokens = _extract_tokens(data)
        logger.info(
            "matrix.completion.done",
            model_id=model_id,
            tokens=tokens,
            response_time_ms=elapsed_ms,
        )
        return CompletionResult(
            text=text,
            model_id=model_id,
            tokens_used=tokens,
            response_time_ms=elapsed_ms,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()
