# trigram_search/services/embeddings.py
# Responsibility: Text -> vector embedding clients used by the VECTOR tier.

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx

from trigram_search.config.settings import settings
from trigram_search.services.errors import ConfigurationError, EmbeddingError


class EmbeddingProvider(ABC):
    """Converts text into a fixed-length numeric vector."""

    @abstractmethod
    async def generate_embedding(self, text: str) -> List[float]:
        ...

    @abstractmethod
    def dimensions(self) -> int:
        """Length of the vectors this provider returns (e.g. 1536 for OpenAI)."""


class _HttpEmbeddingProvider(EmbeddingProvider):
    def __init__(self, api_key: str, model: str, client: Optional[httpx.AsyncClient] = None):
        self.api_key = api_key
        self.model = model
        self.client = client or httpx.AsyncClient(timeout=settings.EMBEDDING.REQUEST_TIMEOUT)

    @staticmethod
    def _raise_for_error(response: httpx.Response, vendor: str) -> None:
        if response.is_success:
            return
        try:
            body = response.json()
        except ValueError:
            body = None
        error = body.get("error") if isinstance(body, dict) else None
        message = error.get("message") if isinstance(error, dict) else None
        raise EmbeddingError(f"{vendor} API error: {message or response.reason_phrase}",
                             status_code=response.status_code)

    async def aclose(self) -> None:
        await self.client.aclose()


class OpenAIEmbeddingProvider(_HttpEmbeddingProvider):
    URL = "https://api.openai.com/v1/embeddings"

    def __init__(self, api_key: str, model: str = "text-embedding-3-small",
                 client: Optional[httpx.AsyncClient] = None):
        super().__init__(api_key, model, client)

    async def generate_embedding(self, text: str) -> List[float]:
        response = await self.client.post(
            self.URL,
            headers={"Authorization": f"Bearer {self.api_key}"},
            json={"input": text, "model": self.model},
        )
        self._raise_for_error(response, "OpenAI")
        try:
            return response.json()["data"][0]["embedding"]
        except (KeyError, IndexError, ValueError) as e:
            raise EmbeddingError(f"OpenAI API returned an unexpected payload: {e}") from e

    def dimensions(self) -> int:
        return 1536 if "3-small" in self.model else 3072


class GeminiEmbeddingProvider(_HttpEmbeddingProvider):
    URL_TEMPLATE = "https://generativelanguage.googleapis.com/v1beta/models/{model}:embedContent"

    def __init__(self, api_key: str, model: str = "embedding-001",
                 client: Optional[httpx.AsyncClient] = None):
        super().__init__(api_key, model, client)

    async def generate_embedding(self, text: str) -> List[float]:
        payload: Dict[str, Any] = {"content": {"parts": [{"text": text}]}}
        response = await self.client.post(
            self.URL_TEMPLATE.format(model=self.model),
            params={"key": self.api_key},
            json=payload,
        )
        self._raise_for_error(response, "Gemini")
        try:
            return response.json()["embedding"]["values"]
        except (KeyError, ValueError) as e:
            raise EmbeddingError(f"Gemini API returned an unexpected payload: {e}") from e

    def dimensions(self) -> int:
        return 768


def build_embedding_provider(provider: str, api_key: str, model: Optional[str] = None) -> Optional[EmbeddingProvider]:
    """
    Builds the provider named in settings ("none", "openai" or "gemini").

    Raises:
        ConfigurationError: unknown provider name or missing API key.
    """
    name = provider.lower()
    if name == "none":
        return None
    if not api_key:
        raise ConfigurationError(f"An API key is required for the {name!r} embedding provider")
    if name == "openai":
        return OpenAIEmbeddingProvider(api_key, model or "text-embedding-3-small")
    if name == "gemini":
        return GeminiEmbeddingProvider(api_key, model or "embedding-001")
    raise ConfigurationError(f"Unknown embedding provider: {provider!r}")
