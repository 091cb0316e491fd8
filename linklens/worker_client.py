"""
HTTP client for the enrichment worker.

The worker exposes two JSON endpoints:

    POST /preview  {"url": ...} -> {"title": ...}
    POST /analyze  {"url": ...} -> {"title", "summary", "keywords", "category"}

Requests carry the current session's access token as a bearer token.
A 401 response surfaces as AuthError so callers can report an expired
session; every other failure surfaces as TransportError.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional
from urllib.parse import urlparse

import httpx

from .config import DEFAULT_ANALYZE_TIMEOUT, DEFAULT_REQUEST_TIMEOUT
from .errors import AuthError, TransportError
from .protocol import AnalysisResult, PreviewResult

logger = logging.getLogger(__name__)

PREVIEW_PATH = "/preview"
ANALYZE_PATH = "/analyze"

# Error bodies are truncated to this many characters in messages
ERROR_BODY_EXCERPT = 100

TokenProvider = Callable[[], Optional[str]]


class WorkerClient:
    """Async HTTP client for the preview/analyze worker."""

    def __init__(
        self,
        base_url: str,
        *,
        token_provider: Optional[TokenProvider] = None,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._token_provider = token_provider

        # Refuse non-HTTPS for remote workers (bearer token would be sent in cleartext)
        if not self._base_url.startswith("https://"):
            host = urlparse(self._base_url).hostname or ""
            if host not in ("localhost", "127.0.0.1", "::1"):
                raise ValueError(
                    f"Worker URL must use HTTPS (got {self._base_url}). "
                    "Use HTTPS to protect credentials, or use localhost for local development."
                )

        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={"Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    @property
    def preview_endpoint(self) -> str:
        return self._base_url + PREVIEW_PATH

    def _headers(self) -> dict[str, str]:
        token = self._token_provider() if self._token_provider else None
        if token:
            return {"Authorization": f"Bearer {token}"}
        return {}

    async def _request(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        try:
            resp = await self._client.post(path, json=body, headers=self._headers())
        except httpx.TimeoutException as e:
            raise TransportError(f"Worker request timed out: {path}") from e
        except httpx.HTTPError as e:
            raise TransportError(f"Worker request failed: {e}") from e

        if resp.status_code == 401:
            logger.warning("Worker rejected credentials: %s", resp.url)
            raise AuthError()

        if resp.status_code >= 400:
            text = resp.text or ""
            logger.error("[Worker] %s %s %s", resp.status_code, resp.url, text)
            detail = f": {text[:ERROR_BODY_EXCERPT]}" if text else ""
            raise TransportError(f"Worker {resp.status_code}{detail}", resp.status_code)

        try:
            data = resp.json()
        except ValueError as e:
            raise TransportError(f"Worker returned invalid JSON from {path}") from e
        if not isinstance(data, dict):
            raise TransportError(f"Worker returned unexpected payload from {path}")
        return data

    async def preview(self, url: str) -> PreviewResult:
        """POST /preview. Cancel the awaiting task to abort the request."""
        data = await self._request(PREVIEW_PATH, {"url": url})
        return PreviewResult(title=data.get("title") or None)

    async def analyze(self, url: str, *, timeout: float = DEFAULT_ANALYZE_TIMEOUT) -> AnalysisResult:
        """POST /analyze, aborted after ``timeout`` seconds."""
        try:
            async with asyncio.timeout(timeout):
                data = await self._request(ANALYZE_PATH, {"url": url})
        except TimeoutError as e:
            raise TransportError(f"Analysis timed out after {timeout:g}s") from e

        keywords = data.get("keywords") or []
        if not isinstance(keywords, list):
            keywords = []
        return AnalysisResult(
            title=data.get("title") or None,
            summary=data.get("summary") or None,
            keywords=[str(k) for k in keywords],
            category=data.get("category") or None,
        )

    async def aclose(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()
