"""
Embedding Client

This module implements the embedding provider used by ingestion and retrieval.
It calls the OpenAI embeddings API (or any compatible provider) and is
responsible for:

- Batching text inputs
- Failing fast when no credential is configured
- Network and transport error isolation
- Strict response validation

The client holds only its configuration and credential; every call opens its
own HTTP client, so an instance is safe to share across requests.
"""

from __future__ import annotations

from typing import List, Sequence, Optional
import logging
import httpx

from .models import EmbeddingInfo
from ..config import settings
from ..core.errors import ConfigurationError, ProviderError

logger = logging.getLogger("rag.embedder")


class Embedder:
    """
    Asynchronous embedding generator.

    This class performs no caching and no deduplication; callers must avoid
    re-embedding identical text themselves. Failures are never retried here.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize an Embedder.

        Parameters
        ----------
        api_key : Optional[str]
            Override for the API key. Defaults to settings.openai_api_key.
            A missing key is only reported when an embedding is requested.

        model : Optional[str]
            Override for the embedding model. Defaults to settings.embedding_model.

        base_url : Optional[str]
            Embeddings endpoint. Defaults to settings.embedding_base_url.

        timeout : Optional[float]
            HTTP timeout for each request.

        transport : Optional[httpx.AsyncBaseTransport]
            Custom transport, used by tests to stub the remote service.
        """
        self.api_key = api_key or settings.resolved_api_key()
        self.model = model or settings.embedding_model
        self.base_url = base_url or settings.embedding_base_url
        self.timeout = timeout if timeout is not None else settings.embedding_timeout
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def embed(
        self,
        texts: Sequence[str],
        batch_size: int = 20,
    ) -> List[List[float]]:
        """
        Generate embeddings for a sequence of input texts.

        Parameters
        ----------
        texts : Sequence[str]
            Input text strings.

        batch_size : int
            Maximum number of inputs per request.

        Returns
        -------
        List[List[float]]
            One embedding per input, in input order.

        Raises
        ------
        ConfigurationError
            If no API key is configured.

        ProviderError
            If any batch fails or the response is malformed.
        """
        if not texts:
            return []

        if not self.is_configured:
            raise ConfigurationError(
                "Embedding provider API key is not configured (OPENAI_API_KEY)."
            )

        all_embeddings: List[List[float]] = []
        headers = {"Authorization": f"Bearer {self.api_key}"}

        async with httpx.AsyncClient(
            timeout=self.timeout,
            transport=self._transport,
        ) as client:
            for start in range(0, len(texts), batch_size):
                batch = list(texts[start : start + batch_size])
                payload = {
                    "model": self.model,
                    "input": batch,
                    "encoding_format": "float",
                }

                try:
                    response = await client.post(
                        self.base_url,
                        json=payload,
                        headers=headers,
                    )
                    response.raise_for_status()
                    data = response.json()
                except (httpx.HTTPError, ValueError) as exc:
                    logger.error(
                        "Embedding request failed (%s): batch size=%d, error=%s",
                        type(exc).__name__,
                        len(batch),
                        str(exc),
                    )
                    raise ProviderError(
                        f"Embedding generation failed: {type(exc).__name__}"
                    ) from exc

                embeddings = self._extract_embeddings(data)
                if len(embeddings) != len(batch):
                    raise ProviderError(
                        f"Embedding response returned {len(embeddings)} vectors "
                        f"for {len(batch)} inputs."
                    )
                all_embeddings.extend(embeddings)

        return all_embeddings

    async def embed_text(self, text: str) -> List[float]:
        """
        Embed a single text with exactly one remote call.
        """
        embeddings = await self.embed([text], batch_size=1)
        return embeddings[0]

    async def describe(self, text: str) -> EmbeddingInfo:
        """
        Embed a single text and report its dimension and model.
        """
        embedding = await self.embed_text(text)
        return EmbeddingInfo(
            embedding=embedding,
            dimension=len(embedding),
            model=self.model,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _extract_embeddings(data: dict) -> List[List[float]]:
        """
        Parse and validate embedding output format.

        OpenAI returns:
            { "data": [ {"index": 0, "embedding": [...]}, ... ] }

        Records are ordered by their "index" field when present.

        Raises
        ------
        ProviderError
            If the API returns an unexpected structure.
        """
        if not isinstance(data, dict) or "data" not in data:
            raise ProviderError("Embedding response missing 'data' field.")

        records = data["data"]
        if not isinstance(records, list):
            raise ProviderError("'data' field must be a list.")

        if all(isinstance(r, dict) and isinstance(r.get("index"), int) for r in records):
            records = sorted(records, key=lambda r: r["index"])

        embeddings: List[List[float]] = []

        for index, record in enumerate(records):
            if not isinstance(record, dict) or "embedding" not in record:
                raise ProviderError(
                    f"Malformed embedding record at index {index}."
                )

            emb = record["embedding"]
            if not isinstance(emb, list) or not emb or not all(
                isinstance(x, (float, int)) for x in emb
            ):
                raise ProviderError(
                    f"Invalid embedding vector at index {index}: must be float list."
                )

            embeddings.append([float(x) for x in emb])

        return embeddings
