"""
OpenAI chat-completions provider.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional

import httpx
import structlog

from ..errors import ErrorCode, TimelineError, bad_output
from ..log import safe_error
from ..resilience import CancelSignal, RetryPolicy, map_error, status_of, with_retry, with_timeout
from .base import GenerationProvider

logger = structlog.get_logger()

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4o-mini"
MAX_PROVIDER_MESSAGE = 200

_INVALID_REQUEST_STATUSES = {400, 404, 409, 422}
_CREDENTIAL_STATUSES = {401, 403}


def _provider_details(error: BaseException) -> Dict[str, Any]:
    """Pull the upstream error code and message out of an OpenAI error body."""
    if not isinstance(error, httpx.HTTPStatusError):
        return {}
    details: Dict[str, Any] = {"providerStatus": error.response.status_code}
    try:
        body = error.response.json()
    except ValueError:
        return details
    upstream = body.get("error") if isinstance(body, dict) else None
    if isinstance(upstream, dict):
        if upstream.get("code"):
            details["providerCode"] = str(upstream["code"])
        if upstream.get("message"):
            details["providerMessage"] = str(upstream["message"])[:MAX_PROVIDER_MESSAGE]
    return details


def map_provider_error(error: BaseException, operation: str) -> TimelineError:
    """Map a failed provider call onto the error taxonomy."""
    status = status_of(error)
    details = {"operation": operation, **_provider_details(error)}

    if status in _CREDENTIAL_STATUSES:
        return TimelineError(
            ErrorCode.NOT_CONFIGURED,
            "Provider rejected the configured credentials.",
            details=details,
        )
    if status in _INVALID_REQUEST_STATUSES:
        return TimelineError(
            ErrorCode.INVALID_REQUEST,
            "Provider rejected the request.",
            details=details,
        )

    payload = map_error(error, operation)
    payload.details.update(details)
    return TimelineError.from_payload(payload)


class OpenAIProvider(GenerationProvider):
    """
    Provider backed by the OpenAI chat-completions API.

    Transport failures, timeouts, 429 and 5xx are retried; the response
    content itself is decoded once and never retried.
    """

    name = "openai"

    def __init__(
        self,
        api_key: Optional[str],
        model: str = DEFAULT_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        temperature: float = 0.2,
        timeout_ms: int = 30_000,
        policy: Optional[RetryPolicy] = None,
        client: Optional[httpx.AsyncClient] = None,
        signal: Optional[CancelSignal] = None,
    ):
        super().__init__(model=model)
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.timeout_ms = timeout_ms
        self.policy = policy or RetryPolicy()
        self.signal = signal
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout_ms / 1000)

    async def close(self) -> None:
        """Close the HTTP client if this provider created it."""
        if self._owns_client:
            await self.client.aclose()

    def _request_body(self, system_prompt: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "model": self.model,
            "temperature": self.temperature,
            "response_format": {"type": "json_object"},
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": self.render_payload(payload)},
            ],
        }

    async def _complete(self, task: str, system_prompt: str, payload: Dict[str, Any]) -> str:
        if not self.api_key:
            raise TimelineError(
                ErrorCode.NOT_CONFIGURED,
                "OpenAI provider is not configured.",
                details={"provider": self.name},
            )

        operation = f"provider.{task}"
        body = self._request_body(system_prompt, payload)
        headers = {"Authorization": f"Bearer {self.api_key}"}

        async def attempt(_signal: CancelSignal) -> Dict[str, Any]:
            response = await self.client.post(
                f"{self.base_url}/chat/completions", json=body, headers=headers
            )
            response.raise_for_status()
            return response.json()

        try:
            data = await with_retry(
                lambda: with_timeout(
                    attempt, timeout_ms=self.timeout_ms, label=operation, parent=self.signal
                ),
                policy=self.policy,
                operation=operation,
                signal=self.signal,
            )
        except asyncio.CancelledError:
            raise
        except ValueError as exc:
            raise bad_output("Provider response was not valid JSON.") from exc
        except Exception as exc:
            error = map_provider_error(exc, operation)
            logger.warning(
                "provider_call_failed",
                provider=self.name,
                task=task,
                code=error.code.value,
                error=safe_error(exc),
            )
            raise error from exc

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise bad_output() from exc
        if not isinstance(content, str) or not content.strip():
            raise bad_output()
        return content
