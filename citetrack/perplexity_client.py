from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from .errors import UpstreamError, ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnswerResult:
    text: str
    citations: list[str]
    raw: dict[str, Any] = field(default_factory=dict)


def _extract_text(payload: dict[str, Any]) -> str:
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        return ""
    first = choices[0]
    if not isinstance(first, dict):
        return ""
    message = first.get("message")
    if isinstance(message, dict) and isinstance(message.get("content"), str):
        return message["content"]
    return ""


def _extract_citations(payload: dict[str, Any]) -> list[str]:
    citations = payload.get("citations")
    if isinstance(citations, list):
        return [c for c in citations if isinstance(c, str)]

    # Newer responses may only carry structured search results.
    results = payload.get("search_results")
    if isinstance(results, list):
        return [r["url"] for r in results if isinstance(r, dict) and isinstance(r.get("url"), str)]
    return []


class PerplexityClient:
    """Async client for the Perplexity chat completions API."""

    def __init__(
        self,
        *,
        api_key: str | None,
        base_url: str = "https://api.perplexity.ai",
        timeout_seconds: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not api_key:
            raise ValidationError("API key is required")

        self._base_url = base_url.rstrip("/")
        self._timeout = httpx.Timeout(timeout_seconds)
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            headers={"Authorization": f"Bearer {api_key}"},
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> PerplexityClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        body: Any | None = None,
        timeout: float | None = None,
    ) -> httpx.Response:
        kwargs: dict[str, Any] = {"json": body}
        if timeout is not None:
            kwargs["timeout"] = httpx.Timeout(timeout)
        try:
            resp = await self._client.request(method, path, **kwargs)
            resp.raise_for_status()
            return resp
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            text = e.response.text
            logger.warning("Perplexity API error %s (%s %s): %s", status, method, path, text)
            raise UpstreamError(f"Perplexity API error: {status}", status_code=status, body=text) from e
        except httpx.RequestError as e:
            logger.warning("Perplexity request failed (%s %s): %s", method, path, e)
            raise UpstreamError(f"Perplexity request failed: {e}", body=str(e)) from e

    async def ask(self, *, model: str, prompt: str, timeout: float | None = None) -> AnswerResult:
        """Send one user prompt and return the answer text and ordered citation URLs."""
        body = {
            "model": model,
            "messages": [{"role": "user", "content": prompt}],
        }
        resp = await self._request("POST", "/chat/completions", body=body, timeout=timeout)
        try:
            payload = resp.json()
        except ValueError as e:
            raise UpstreamError(
                "Perplexity API returned a non-JSON response",
                status_code=resp.status_code,
                body=resp.text,
            ) from e
        if not isinstance(payload, dict):
            raise UpstreamError(
                f"Unexpected Perplexity response: {payload!r}",
                status_code=resp.status_code,
                body=resp.text,
            )

        return AnswerResult(
            text=_extract_text(payload),
            citations=_extract_citations(payload),
            raw=payload,
        )
