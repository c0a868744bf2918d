"""
Gemini Model Client
===================

Async client for the Gemini ``generateContent`` endpoint.
Enforces a hard per-request timeout and maps failures onto the
model-client error types. Never retries; retry policy belongs to callers.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

from sort_inbox.utils.exceptions import (
    CredentialError,
    ModelTimeoutError,
    ModelTransportError,
    UpstreamError,
)
from sort_inbox.utils.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_MODEL = "gemini-2.0-flash"
DEFAULT_TIMEOUT_MS = 10000

TEMPERATURE = 0.1
SINGLE_MAX_OUTPUT_TOKENS = 10
BATCH_MAX_OUTPUT_TOKENS = 1024

VERIFY_PROMPT = (
    "You are a folder classification assistant. "
    "Reply to this test message with exactly: TEST SUCCESS"
)
VERIFY_MARKER = "test success"


def build_request(prompt: str, max_output_tokens: int = SINGLE_MAX_OUTPUT_TOKENS) -> Dict[str, Any]:
    """Build a generateContent request body.

    Args:
        prompt: Prompt text.
        max_output_tokens: Output budget (10 for one folder name, more for batches).

    Returns:
        JSON-serializable request body.
    """
    return {
        "contents": [{
            "parts": [{"text": prompt}]
        }],
        "generationConfig": {
            "temperature": TEMPERATURE,
            "maxOutputTokens": max_output_tokens,
        },
    }


class GeminiClient:
    """Sends classification requests to Gemini.

    The underlying ``httpx.AsyncClient`` is created lazily and shared by all
    requests; call ``aclose`` when done.
    """

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        log: Optional[logging.Logger] = None,
    ):
        """Initialize the client.

        Args:
            model: Gemini model name.
            base_url: API base URL.
            transport: Optional httpx transport (tests use ``httpx.MockTransport``).
            log: Logger override.
        """
        self.model = model
        self.base_url = base_url.rstrip("/")
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self.log = log or logger

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(transport=self._transport)
        return self._client

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def send(
        self,
        request: Dict[str, Any],
        *,
        api_key: str,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
    ) -> Dict[str, Any]:
        """Send one request and return the decoded response.

        Args:
            request: Body from ``build_request``.
            api_key: Gemini API key.
            timeout_ms: Hard wall-clock budget for the whole call.

        Returns:
            Decoded JSON response. A 2xx body that is not JSON yields an
            empty candidate list.

        Raises:
            ModelTimeoutError: The call exceeded ``timeout_ms``.
            UpstreamError: The service answered with a non-2xx status.
            ModelTransportError: Any other transport failure.
        """
        timeout_s = timeout_ms / 1000
        client = self._get_client()

        try:
            response = await asyncio.wait_for(
                client.post(
                    self.endpoint,
                    json=request,
                    headers={
                        "Content-Type": "application/json",
                        "x-goog-api-key": api_key,
                    },
                    timeout=timeout_s,
                ),
                timeout=timeout_s,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise ModelTimeoutError(timeout_ms, cause=e)
        except httpx.HTTPError as e:
            raise ModelTransportError(f"API request failed: {e}", cause=e)

        if not response.is_success:
            raise UpstreamError(response.status_code, response.text)

        try:
            data = response.json()
        except ValueError:
            self.log.warning("Model response body is not JSON")
            return {"candidates": []}

        if not isinstance(data, dict):
            self.log.warning("Model response body is not a JSON object")
            return {"candidates": []}

        block_reason = (data.get("promptFeedback") or {}).get("blockReason")
        if block_reason:
            self.log.warning(f"Prompt was blocked by the service: {block_reason}")

        return data

    async def verify_credential(self, api_key: str, timeout_ms: int = DEFAULT_TIMEOUT_MS) -> bool:
        """Check that ``api_key`` works by sending a fixed test prompt.

        Returns:
            True if the answer contains the success marker.

        Raises:
            CredentialError: If the key is empty.
            ModelClientError: If the request itself fails.
        """
        if not api_key:
            raise CredentialError()

        data = await self.send(
            build_request(VERIFY_PROMPT, SINGLE_MAX_OUTPUT_TOKENS),
            api_key=api_key,
            timeout_ms=timeout_ms,
        )

        candidates = data.get("candidates") or []
        if not candidates:
            return False
        try:
            text = candidates[0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            return False
        return VERIFY_MARKER in str(text).strip().lower()
