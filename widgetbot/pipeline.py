"""Knowledge ingestion (chunk -> embed -> replace) and per-message retrieval."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from .config import config
from .document_processing import TextChunker
from .embeddings import EmbeddingService
from .errors import ConfigurationError, ValidationError, WidgetBotError
from .tenant_store import TenantStore
from .vector_store import get_vector_store

if TYPE_CHECKING:
    from .vector_store import BaseSQLiteStore, RetrievalResult

logger = config.get_logger(__name__)

KNOWLEDGE_SOURCE = "rag_content"


class IngestionStage(StrEnum):
    """Ingestion state machine: IDLE -> CHUNKING -> EMBEDDING -> REPLACING -> IDLE."""

    IDLE = "idle"
    CHUNKING = "chunking"
    EMBEDDING = "embedding"
    REPLACING = "replacing"
    FAILED = "failed"


@dataclass
class IngestionResult:
    """Outcome of one successful ingestion run."""

    inserted_count: int
    generation: str | None = None
    message: str | None = None

    def to_payload(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "insertedCount": self.inserted_count,
            "generation": self.generation,
        }
        if self.message:
            payload["message"] = self.message
        return payload


def build_embedding_service() -> EmbeddingService | None:
    """Create the shared embedding client when a key is configured.

    Returns:
        EmbeddingService, or None when OPENAI_API_KEY is unset.
    """
    if not config.get_openai_api_key():
        logger.warning("OPENAI_API_KEY not set; retrieval is disabled")
        return None
    return EmbeddingService()


class IngestionPipeline:
    """Orchestrates Load -> Chunk -> Embed -> Replace for one tenant."""

    def __init__(
        self,
        tenant_store: TenantStore | None = None,
        vector_store: BaseSQLiteStore | None = None,
        embedding_service: EmbeddingService | None = None,
        chunker: TextChunker | None = None,
    ) -> None:
        """Wire the pipeline's collaborators.

        Args:
            tenant_store: Source of tenant knowledge text.
            vector_store: Destination for embedding rows. If None, uses
                config.VECTOR_BACKEND.
            embedding_service: Embedding client. None disables ingestion and
                retrieval.
            chunker: Text chunker. If None, uses config.CHUNK_SIZE and
                config.MAX_CHUNKS.
        """
        self.tenant_store = tenant_store or TenantStore()
        self.vector_store = vector_store or get_vector_store()
        self.embedding_service = embedding_service
        self.chunker = chunker or TextChunker(
            chunk_size=config.CHUNK_SIZE, max_chunks=config.MAX_CHUNKS
        )
        logger.info("Using %s vector storage", self.vector_store.backend)

    @property
    def retrieval_enabled(self) -> bool:
        return self.embedding_service is not None

    def ingest(self, tenant_id: str) -> IngestionResult:
        """Rebuild the tenant's vector index from its raw knowledge text.

        Blank knowledge text is a no-op, not an error.

        Returns:
            IngestionResult with the number of rows now live.

        Raises:
            ValidationError: If ``tenant_id`` is blank.
            ConfigurationError: If no embedding service is configured.
            NotFoundError: If the tenant does not exist.
            WidgetBotError: Any stage failure, annotated with ``stage``.
        """
        if not tenant_id or not tenant_id.strip():
            msg = "tenantId is required"
            raise ValidationError(msg)
        if self.embedding_service is None:
            msg = "OPENAI_API_KEY not configured"
            raise ConfigurationError(msg)

        tenant = self.tenant_store.get(tenant_id)
        if not tenant.rag_content.strip():
            logger.info("Tenant %s has no knowledge text; nothing to ingest", tenant_id)
            return IngestionResult(inserted_count=0, message="No RAG content to ingest")

        stage = IngestionStage.CHUNKING
        logger.info("Starting ingestion for tenant %s", tenant_id)
        try:
            chunks = self.chunker.chunk_text(
                tenant.rag_content, tenant_id, source=KNOWLEDGE_SOURCE
            )

            stage = IngestionStage.EMBEDDING
            vectors = self.embedding_service.embed([chunk.content for chunk in chunks])
            for chunk, vector in zip(chunks, vectors, strict=True):
                chunk.embedding = vector
                chunk.metadata["business"] = tenant.business_name

            stage = IngestionStage.REPLACING
            generation = self.vector_store.replace_all(tenant_id, chunks)
        except WidgetBotError as exc:
            exc.stage = exc.stage or stage.value
            logger.exception(
                "Ingestion for tenant %s %s at stage %s",
                tenant_id,
                IngestionStage.FAILED,
                exc.stage,
            )
            raise

        logger.info(
            "Ingestion for tenant %s completed: %d chunks, back to %s",
            tenant_id,
            len(chunks),
            IngestionStage.IDLE,
        )
        return IngestionResult(inserted_count=len(chunks), generation=generation)

    def refresh(self, tenant_id: str) -> IngestionResult | None:
        """Re-ingest after a knowledge edit, when retrieval is enabled.

        Returns:
            The ingestion result, or None when retrieval is disabled and
            chat answers from the full knowledge text.
        """
        if not self.retrieval_enabled:
            logger.info("Retrieval disabled; tenant %s not re-indexed", tenant_id)
            return None
        return self.ingest(tenant_id)

    def retrieve(
        self,
        tenant_id: str,
        question: str,
        top_k: int | None = None,
        threshold: float | None = None,
    ) -> RetrievalResult:
        """Find the tenant's chunks most similar to ``question``.

        Args:
            tenant_id: Tenant scope.
            question: The user's message.
            top_k: Result cap. If None, uses config.RETRIEVAL_TOP_K.
            threshold: Minimum similarity. If None, uses
                config.RETRIEVAL_THRESHOLD.

        Returns:
            Ranked (chunk, score) pairs; empty when retrieval is disabled or
            nothing clears the threshold.
        """
        if self.embedding_service is None or not question.strip():
            return []

        query_vector = self.embedding_service.get_embedding(question)
        return self.vector_store.query(
            tenant_id,
            query_vector,
            threshold=config.RETRIEVAL_THRESHOLD if threshold is None else threshold,
            top_k=config.RETRIEVAL_TOP_K if top_k is None else top_k,
        )

    def delete_tenant(self, tenant_id: str) -> None:
        """Delete a tenant together with its vector index.

        Vectors go first, so a failure leaves the tenant row in place for a
        retry.

        Raises:
            NotFoundError: If the tenant does not exist.
            VectorStoreError: If the vector rows could not be deleted.
        """
        tenant = self.tenant_store.get(tenant_id)
        self.vector_store.delete_tenant(tenant.id)
        self.tenant_store.delete(tenant.id)
        logger.info("Deleted tenant %s and its vector index", tenant.id)
