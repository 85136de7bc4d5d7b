"""
Text-generation provider client.
"""

import logging
from typing import Optional, Protocol

import httpx
from pydantic import BaseModel

from generator.src.errors import ProviderError, ProviderErrorKind

logger = logging.getLogger(__name__)

class ModelConfig(BaseModel):
    model: str
    max_tokens: int = 8192
    temperature: float = 0.7
    input_cost_per_mtok: float = 3.00
    output_cost_per_mtok: float = 15.00

    def cost(self, input_tokens: int, output_tokens: int) -> float:
        return (
            input_tokens * self.input_cost_per_mtok
            + output_tokens * self.output_cost_per_mtok
        ) / 1_000_000

class GenerationResponse(BaseModel):
    text: str
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def tokens_used(self) -> int:
        return self.input_tokens + self.output_tokens

class TextProvider(Protocol):
    async def generate(self, prompt: str, model_config: ModelConfig) -> GenerationResponse:
        ...

def classify_status(status_code: int) -> ProviderErrorKind:
    """Map an HTTP status from the provider to an error kind."""
    if status_code == 429:
        return ProviderErrorKind.RATE_LIMITED
    if status_code == 529:
        return ProviderErrorKind.OVERLOADED
    if status_code in (401, 403):
        return ProviderErrorKind.AUTHENTICATION
    if status_code >= 500:
        return ProviderErrorKind.SERVER
    return ProviderErrorKind.INVALID_REQUEST

class AnthropicProvider:
    """Calls the Anthropic Messages API over httpx.

    The request runs inside the caller's task, so cancelling the task (as a
    step timeout does) aborts the HTTP call as well.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.anthropic.com",
        api_version: str = "2023-06-01",
        timeout: float = 300.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={
                "x-api-key": api_key,
                "anthropic-version": api_version,
                "content-type": "application/json",
            },
        )

    async def generate(self, prompt: str, model_config: ModelConfig) -> GenerationResponse:
        payload = {
            "model": model_config.model,
            "max_tokens": model_config.max_tokens,
            "temperature": model_config.temperature,
            "messages": [{"role": "user", "content": prompt}],
        }

        try:
            response = await self._client.post("/v1/messages", json=payload)
        except httpx.TransportError as e:
            raise ProviderError(f"Provider unreachable: {e}", ProviderErrorKind.NETWORK)

        if response.status_code != 200:
            kind = classify_status(response.status_code)
            try:
                message = response.json().get("error", {}).get("message", response.text)
            except ValueError:
                message = response.text
            raise ProviderError(
                f"Provider returned {response.status_code}: {message}",
                kind,
                status_code=response.status_code,
            )

        data = response.json()
        text = "".join(
            block.get("text", "")
            for block in data.get("content", [])
            if block.get("type") == "text"
        )
        usage = data.get("usage", {})

        return GenerationResponse(
            text=text,
            input_tokens=usage.get("input_tokens", 0),
            output_tokens=usage.get("output_tokens", 0),
        )

    async def aclose(self):
        await self._client.aclose()
