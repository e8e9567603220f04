"""OpenRouter API client — implements the ChatProvider interface.

Communicates with the OpenRouter API (https://openrouter.ai/api/v1)
using httpx for both non-streaming and SSE streaming chat completions.
"""

import json
import logging
from collections.abc import AsyncIterator

import httpx

from grounded_qa.application.interfaces.chat_provider import ChatProvider
from grounded_qa.domain.entities import (
    ChatMessage,
    ChatCompletionResult,
    CompletionChunk,
    TokenUsage,
)
from grounded_qa.domain.exceptions import CompletionProviderError

logger = logging.getLogger(__name__)

_DONE_LINE = "data: [DONE]"


class OpenRouterClient(ChatProvider):
    """Infrastructure adapter — connects to the OpenRouter API.

    Uses httpx with connection pooling for async requests.
    Supports both standard JSON responses and SSE streaming.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://openrouter.ai/api/v1",
        app_name: str = "Grounded QA",
        http_client: httpx.AsyncClient | None = None,
    ):
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._app_name = app_name
        self._http_client = http_client

    @property
    def provider_name(self) -> str:
        return "openrouter"

    def _get_headers(self) -> dict[str, str]:
        """Standard headers for OpenRouter requests."""
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
            "X-Title": self._app_name,
        }

    def _build_payload(
        self,
        messages: list[ChatMessage],
        model: str,
        *,
        stream: bool = False,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> dict:
        """Build the request payload for the OpenRouter API."""
        payload: dict = {
            "model": model,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
        }
        if stream:
            payload["stream"] = True
            # Ask for the usage report as the final SSE event
            payload["stream_options"] = {"include_usage": True}
        if temperature is not None:
            payload["temperature"] = temperature
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens
        return payload

    async def _get_client(self) -> httpx.AsyncClient:
        """Return the injected client or create a new one."""
        if self._http_client is not None:
            return self._http_client
        return httpx.AsyncClient(timeout=120.0)

    async def complete(
        self,
        messages: list[ChatMessage],
        model: str,
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> ChatCompletionResult:
        """Send a non-streaming chat completion to OpenRouter."""
        payload = self._build_payload(
            messages, model, temperature=temperature, max_tokens=max_tokens
        )
        url = f"{self._base_url}/chat/completions"

        client = await self._get_client()
        should_close = self._http_client is None

        try:
            try:
                response = await client.post(
                    url, headers=self._get_headers(), json=payload
                )
            except httpx.HTTPError as e:
                raise CompletionProviderError(self.provider_name, 502, str(e)) from e

            if response.status_code != 200:
                self._raise_provider_error(response)

            data = response.json()
            return self._parse_completion_response(data)

        finally:
            if should_close:
                await client.aclose()

    async def stream(
        self,
        messages: list[ChatMessage],
        model: str,
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[CompletionChunk]:
        """Send a streaming chat completion to OpenRouter.

        Parses SSE ``data:`` lines into CompletionChunks. Filters out
        OpenRouter keepalive comments (': OPENROUTER PROCESSING').
        """
        payload = self._build_payload(
            messages, model, stream=True, temperature=temperature, max_tokens=max_tokens
        )
        url = f"{self._base_url}/chat/completions"

        client = await self._get_client()
        should_close = self._http_client is None

        try:
            async with client.stream(
                "POST", url, headers=self._get_headers(), json=payload
            ) as response:
                if response.status_code != 200:
                    body = await response.aread()
                    self._raise_provider_error_from_bytes(
                        response.status_code, body
                    )

                async for line in response.aiter_lines():
                    # Skip empty lines and OpenRouter keepalive comments
                    if not line or line.startswith(":"):
                        continue

                    # End of stream marker
                    if line.strip() == _DONE_LINE:
                        break

                    if line.startswith("data: "):
                        chunk = self._parse_stream_line(line[len("data: "):])
                        if chunk is not None:
                            yield chunk

        except httpx.HTTPError as e:
            raise CompletionProviderError(self.provider_name, 502, str(e)) from e
        finally:
            if should_close:
                await client.aclose()

    def _parse_stream_line(self, raw: str) -> CompletionChunk | None:
        """Turn one SSE data payload into a CompletionChunk (None for empty deltas)."""
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Skipping malformed SSE payload: %s", raw[:200])
            return None

        if "error" in data:
            error = data["error"]
            raise CompletionProviderError(
                provider=self.provider_name,
                status_code=error.get("code", 500),
                message=error.get("message", "Unknown error"),
            )

        choices = data.get("choices") or []
        delta = choices[0].get("delta", {}) if choices else {}
        content = delta.get("content") or ""
        finish_reason = choices[0].get("finish_reason") if choices else None
        usage_data = data.get("usage")

        usage = None
        if usage_data:
            usage = TokenUsage(
                prompt_tokens=usage_data.get("prompt_tokens", 0),
                completion_tokens=usage_data.get("completion_tokens", 0),
                total_tokens=usage_data.get("total_tokens", 0),
                cost=usage_data.get("cost"),
            )

        if not content and usage is None and finish_reason is None:
            return None
        return CompletionChunk(
            content=content,
            usage=usage,
            model=data.get("model"),
            finish_reason=finish_reason,
        )

    def _parse_completion_response(self, data: dict) -> ChatCompletionResult:
        """Parse the OpenRouter JSON response into a domain entity."""
        # Check for error in response body
        if "error" in data:
            error = data["error"]
            raise CompletionProviderError(
                provider=self.provider_name,
                status_code=error.get("code", 500),
                message=error.get("message", "Unknown error"),
            )

        choices = data.get("choices", [])
        if not choices:
            raise CompletionProviderError(
                provider=self.provider_name,
                status_code=500,
                message="No choices in response",
            )

        choice = choices[0]
        message = choice.get("message", {})
        usage_data = data.get("usage", {})

        return ChatCompletionResult(
            model=data.get("model", ""),
            content=message.get("content", "") or "",
            finish_reason=choice.get("finish_reason", "stop") or "stop",
            usage=TokenUsage(
                prompt_tokens=usage_data.get("prompt_tokens", 0),
                completion_tokens=usage_data.get("completion_tokens", 0),
                total_tokens=usage_data.get("total_tokens", 0),
                cost=usage_data.get("cost"),
            ),
            provider=self.provider_name,
        )

    def _raise_provider_error(self, response: httpx.Response) -> None:
        """Raise CompletionProviderError from a non-200 httpx Response."""
        try:
            data = response.json()
            error = data.get("error", {})
            message = error.get("message", response.text)
        except Exception:
            message = response.text

        raise CompletionProviderError(
            provider=self.provider_name,
            status_code=response.status_code,
            message=message,
        )

    def _raise_provider_error_from_bytes(
        self, status_code: int, body: bytes
    ) -> None:
        """Raise CompletionProviderError from raw response bytes."""
        try:
            data = json.loads(body)
            error = data.get("error", {})
            message = error.get("message", body.decode())
        except Exception:
            message = body.decode(errors="replace")

        raise CompletionProviderError(
            provider=self.provider_name,
            status_code=status_code,
            message=message,
        )
