"""Ollama advisory provider over its HTTP generate endpoint."""

from typing import Optional

import httpx

from signalcore.config import get_logger, get_settings
from signalcore.core.errors import AdvisoryError

from .base import AdvisoryProvider

logger = get_logger("advisory.ollama")


class OllamaAdvisoryProvider(AdvisoryProvider):
    """Non-streaming client for ``POST {base_url}/api/generate``."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        temperature: float = 0.3,
        max_tokens: int = 2048,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.OLLAMA_URL).rstrip("/")
        self.model = model or settings.OLLAMA_MODEL
        self.timeout = timeout if timeout is not None else settings.AI_TIMEOUT_SECONDS
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._transport = transport

    @property
    def name(self) -> str:
        return f"ollama:{self.model}"

    async def get_advisory(self, prompt: str) -> str:
        payload = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "options": {"temperature": self.temperature, "num_predict": self.max_tokens},
        }
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
                response = await client.post(f"{self.base_url}/api/generate", json=payload)
                response.raise_for_status()
                body = response.json()
        except httpx.HTTPError as e:
            logger.debug(f"Ollama request failed: {e}")
            raise AdvisoryError(f"Ollama request failed: {e}") from e
        except ValueError as e:
            raise AdvisoryError(f"Ollama returned a non-JSON body: {e}") from e

        text = body.get("response") if isinstance(body, dict) else None
        if not isinstance(text, str) or not text:
            raise AdvisoryError("Ollama returned an empty or non-text response")
        return text
