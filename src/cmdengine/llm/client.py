"""
LLM client for structured parsing, text and image generation.

Talks to any OpenAI-compatible HTTP API. Every failure (transport,
timeout, non-2xx, malformed body) is raised as ProviderError so callers
can degrade instead of crashing.
"""

import logging
from typing import Any

import httpx

from cmdengine.core.errors import ProviderError

logger = logging.getLogger(__name__)


class LLMClient:
    """
    Async client for an OpenAI-compatible API.

    Example:
        async with LLMClient(base_url, api_key, model="gpt-4o-mini") as llm:
            text = await llm.complete("Say hi", timeout=10)
    """

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        model: str = "gpt-4o-mini",
        image_model: str = "gpt-image-1",
        provider: str = "openai",
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize the client.

        Args:
            base_url: API base URL (e.g. https://api.openai.com/v1)
            api_key: Bearer token
            model: Chat model name
            image_model: Image model name
            provider: Provider label used in errors and status
            timeout: Default request timeout in seconds
            transport: Optional httpx transport (tests)
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.model = model
        self.image_model = image_model
        self.provider = provider
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def configured(self) -> bool:
        return bool(self.base_url and self.api_key)

    async def __aenter__(self) -> "LLMClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"Content-Type": "application/json"}
            if self.api_key:
                headers["Authorization"] = f"Bearer {self.api_key}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _post(self, path: str, body: dict[str, Any], timeout: float | None) -> dict[str, Any]:
        """POST JSON and return the decoded body, mapping every failure to ProviderError."""
        if not self.configured:
            raise ProviderError(f"{self.provider} is not configured", provider=self.provider)

        client = self._get_client()
        try:
            response = await client.post(path, json=body, timeout=timeout or self.timeout)
        except httpx.TimeoutException as e:
            raise ProviderError(f"{self.provider} request timed out", provider=self.provider) from e
        except httpx.HTTPError as e:
            raise ProviderError(f"{self.provider} request failed: {e}", provider=self.provider) from e

        if response.status_code >= 400:
            logger.warning(
                f"{self.provider} returned {response.status_code} for {path}: {response.text[:200]}"
            )
            raise ProviderError(
                f"{self.provider} error: {response.status_code}",
                provider=self.provider,
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(f"{self.provider} returned invalid JSON", provider=self.provider) from e

    async def complete(
        self,
        prompt: str,
        system: str | None = None,
        json_mode: bool = False,
        max_tokens: int = 1024,
        timeout: float | None = None,
    ) -> str:
        """
        Run a chat completion.

        Args:
            prompt: User message
            system: Optional system message
            json_mode: Ask the model for a JSON object
            max_tokens: Completion token limit
            timeout: Per-call timeout in seconds

        Returns:
            Assistant message content

        Raises:
            ProviderError: On any failure
        """
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        body: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "max_tokens": max_tokens,
        }
        if json_mode:
            body["response_format"] = {"type": "json_object"}

        data = await self._post("/chat/completions", body, timeout)
        try:
            return data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError(f"{self.provider} returned no completion", provider=self.provider) from e

    async def generate_image(
        self,
        prompt: str,
        size: str = "1024x1024",
        timeout: float | None = None,
    ) -> str:
        """
        Generate one image.

        Returns:
            Image URL, or a data URI when the provider returns base64

        Raises:
            ProviderError: On any failure
        """
        body = {"model": self.image_model, "prompt": prompt, "size": size, "n": 1}
        data = await self._post("/images/generations", body, timeout)
        try:
            item = data["data"][0]
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError(f"{self.provider} returned no image", provider=self.provider) from e

        if item.get("url"):
            return item["url"]
        if item.get("b64_json"):
            return f"data:image/png;base64,{item['b64_json']}"
        raise ProviderError(f"{self.provider} returned an empty image", provider=self.provider)


def client_from_settings(settings) -> LLMClient:
    """Build an LLMClient from Settings."""
    return LLMClient(
        base_url=settings.llm_base_url,
        api_key=settings.llm_api_key,
        model=settings.llm_model,
        image_model=settings.llm_image_model,
        provider=settings.llm_provider,
        timeout=max(settings.text_timeout_seconds, settings.image_timeout_seconds),
    )


def strip_code_fences(text: str) -> str:
    """Remove a surrounding ``` fence (with optional language tag) from a reply."""
    text = text.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    return text.strip()
