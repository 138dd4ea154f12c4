"""OpenAI embeddings client."""

import numpy as np
from openai import APIConnectionError, APIStatusError, OpenAI

from .config import config
from .errors import ConfigurationError, EmbeddingProviderError

logger = config.get_logger(__name__)


class EmbeddingService:
    """Turns text into fixed-length vectors through the embeddings API."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        client: OpenAI | None = None,
    ) -> None:
        """Initialize the EmbeddingService with an API key and model.

        Args:
            api_key: OpenAI API key. If None,
                reads from OPENAI_API_KEY environment variable.
            model: Embedding model name. If None, uses config.EMBEDDING_MODEL.
            client: Pre-built client, mainly for tests.

        Raises:
            ConfigurationError: If no API key is available and no client is given.
        """
        if client is None:
            api_key = api_key or config.get_openai_api_key()
            if not api_key:
                msg = "OPENAI_API_KEY not configured"
                raise ConfigurationError(msg)
            default_headers = config.get_api_headers()
            client = OpenAI(
                api_key=api_key,
                base_url=config.OPENAI_BASE_URL,
                default_headers=default_headers or None,
                timeout=config.HTTP_TIMEOUT_SECONDS,
                max_retries=0,
            )
        self.client = client
        self.model = model or config.EMBEDDING_MODEL

    def embed(self, texts: list[str]) -> list[np.ndarray]:
        """Embed all texts in a single provider call, preserving order.

        Args:
            texts: The input texts.

        Returns:
            One float32 vector per input text.

        Raises:
            EmbeddingProviderError: If the provider fails or the payload is
                missing vectors.
        """
        if not texts:
            return []

        try:
            response = self.client.embeddings.create(model=self.model, input=texts)
        except APIStatusError as exc:
            logger.exception("Embeddings API returned status %s", exc.status_code)
            msg = f"Embeddings API error: {exc.status_code}"
            raise EmbeddingProviderError(msg, status_code=exc.status_code) from exc
        except APIConnectionError as exc:
            logger.exception("Embeddings API unreachable")
            msg = "Embeddings API unreachable"
            raise EmbeddingProviderError(msg) from exc

        vectors = self._parse_vectors(response, expected=len(texts))
        logger.info("Generated %d embeddings", len(vectors))
        return vectors

    def get_embedding(self, text: str) -> np.ndarray:
        """Get embedding for a single text.

        Returns:
            np.ndarray: The embedding vector for the input text.
        """
        return self.embed([text])[0]

    @staticmethod
    def _parse_vectors(response: object, expected: int) -> list[np.ndarray]:
        """Validate the provider payload and convert it to numpy arrays.

        Returns:
            Vectors in input order.

        Raises:
            EmbeddingProviderError: On a short list, empty or ragged vectors.
        """
        data = getattr(response, "data", None)
        if not data or len(data) != expected:
            got = len(data) if data else 0
            msg = f"Embeddings API returned {got} vectors for {expected} inputs"
            logger.error(msg)
            raise EmbeddingProviderError(msg)

        # Providers may reorder; `index` restores input order when present.
        ordered = sorted(
            enumerate(data),
            key=lambda item: (
                getattr(item[1], "index", None)
                if isinstance(getattr(item[1], "index", None), int)
                else item[0]
            ),
        )

        vectors: list[np.ndarray] = []
        for _, item in ordered:
            embedding = getattr(item, "embedding", None)
            if not embedding:
                msg = "Embeddings API returned an empty vector"
                logger.error(msg)
                raise EmbeddingProviderError(msg)
            vectors.append(np.asarray(embedding, dtype=np.float32))

        dimensions = {vector.shape[0] for vector in vectors}
        if len(dimensions) != 1:
            msg = f"Embeddings API returned mixed dimensions: {sorted(dimensions)}"
            logger.error(msg)
            raise EmbeddingProviderError(msg)

        return vectors
