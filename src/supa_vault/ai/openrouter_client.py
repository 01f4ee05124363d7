"""OpenRouter LLM client."""

from __future__ import annotations

import time
from typing import Any

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from supa_vault.ai.schemas import AIDecision, MarketContext
from supa_vault.config import Settings
from supa_vault.utils.logging import get_logger, log_llm_call

_OPENROUTER_URL = "https://openrouter.ai/api/v1/chat/completions"

_SYSTEM_PROMPT = (
    "You are an expert crypto trading AI managing a pooled CRO perpetual position. "
    "Return a JSON object ONLY, with no markdown formatting: "
    '{"status": "BULLISH" | "BEARISH" | "NEUTRAL", '
    '"reasoning": "string (max 20 words)", '
    '"action": "BUY" | "SELL" | "HOLD", '
    '"positionSizePercent": number (0-100), '
    '"leverage": number (1-5)}'
)


class OpenRouterError(Exception):
    """Base OpenRouter error."""


class OpenRouterAPIError(OpenRouterError):
    """Raised when API transport/request fails."""


class OpenRouterClient:
    """Thin client for OpenRouter chat completion endpoint."""

    def __init__(self, settings: Settings, http_client: httpx.Client | None = None) -> None:
        self._settings = settings
        self._http = http_client
        self._logger = get_logger("supa_vault.ai.openrouter_client")

    def evaluate(self, context: MarketContext) -> AIDecision:
        """Evaluate one market context and return a strict decision."""
        started = time.perf_counter()
        try:
            content = self._request_completion(context)
        except OpenRouterError:
            elapsed_ms = (time.perf_counter() - started) * 1000
            log_llm_call(
                self._logger,
                model=self._settings.openrouter_model,
                success=False,
                latency_ms=elapsed_ms,
                reason="api_error",
            )
            raise

        decision = AIDecision.parse_response_text(content)
        elapsed_ms = (time.perf_counter() - started) * 1000
        log_llm_call(
            self._logger,
            model=self._settings.openrouter_model,
            success=not decision.reasoning.startswith(("schema_validation_error", "model_response")),
            latency_ms=elapsed_ms,
            status=decision.status,
            action=decision.action,
        )
        return decision

    @retry(
        retry=retry_if_exception_type(OpenRouterAPIError),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        stop=stop_after_attempt(3),
        reraise=True,
    )
    def _request_completion(self, context: MarketContext) -> str:
        if not self._settings.openrouter_api_key:
            raise OpenRouterError("missing_openrouter_api_key")

        headers = {
            "Authorization": f"Bearer {self._settings.openrouter_api_key}",
            "Content-Type": "application/json",
        }
        payload = {
            "model": self._settings.openrouter_model,
            "temperature": 0,
            "messages": [
                {"role": "system", "content": _SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": (
                        f"Analyze {context.instrument} now. "
                        f"Context: {context.model_dump_json()}"
                    ),
                },
            ],
        }

        try:
            if self._http is not None:
                response = self._http.post(_OPENROUTER_URL, headers=headers, json=payload)
            else:
                with httpx.Client(timeout=self._settings.openrouter_timeout) as client:
                    response = client.post(_OPENROUTER_URL, headers=headers, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise OpenRouterAPIError(str(exc)) from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise OpenRouterError("non_json_response") from exc
        return _extract_message_content(body)


def _extract_message_content(payload: Any) -> str:
    """Read assistant content from OpenRouter response payload."""
    if not isinstance(payload, dict):
        return "{}"
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        return "{}"
    first = choices[0]
    if not isinstance(first, dict):
        return "{}"
    message = first.get("message")
    if not isinstance(message, dict):
        return "{}"
    content = message.get("content")
    if isinstance(content, str):
        return content
    return "{}"
