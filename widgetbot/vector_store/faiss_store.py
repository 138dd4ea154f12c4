"""FAISS-backed vector storage with SQLite metadata."""

from __future__ import annotations

import hashlib
import shutil
import sqlite3
from contextlib import closing
from pathlib import Path
from typing import TYPE_CHECKING

import faiss
import numpy as np

from widgetbot.config import config
from widgetbot.errors import PartialIngestionFailure, VectorStoreError
from widgetbot.vector_store.base import ROW_COLUMNS, BaseSQLiteStore, RetrievalResult

if TYPE_CHECKING:
    from collections.abc import Sequence

    from widgetbot.models import KnowledgeChunk

logger = config.get_logger(__name__)


class FaissVectorStore(BaseSQLiteStore):
    """Vector storage using one FAISS index file per tenant generation.

    Chunk rows are committed to SQLite before the index file is written, so
    a failed index write after the pointer flip leaves the tenant without a
    queryable index (``PartialIngestionFailure``) until ingestion is re-run.
    """

    backend = "faiss"

    def __init__(
        self,
        db_path: Path = Path("data/widgetbot.db"),
        index_dir: Path = Path("data/faiss"),
        raw_top_k_multiplier: int = 2,
    ) -> None:
        """Configure FAISS-backed vector store."""
        self.index_dir = Path(index_dir)
        self.index_dir.mkdir(exist_ok=True, parents=True)
        self.raw_top_k_multiplier = max(1, raw_top_k_multiplier)
        self._indexes: dict[str, faiss.IndexIDMap] = {}

        super().__init__(db_path)

    def _tenant_dir(self, tenant_id: str) -> Path:
        digest = hashlib.sha256(tenant_id.encode("utf-8")).hexdigest()[:32]
        return self.index_dir / digest

    def index_path(self, tenant_id: str, generation: str) -> Path:
        return self._tenant_dir(tenant_id) / f"{generation}.faiss"

    @staticmethod
    def _normalize_embedding(embedding: np.ndarray) -> np.ndarray:
        """Normalize embedding for cosine similarity using inner product search.

        Returns:
            Normalized float32 embedding vector.
        """
        vector = np.array(embedding, dtype="float32").reshape(1, -1)
        if np.linalg.norm(vector) == 0:
            return vector[0]
        faiss.normalize_L2(vector)
        return vector[0]

    def replace_all(self, tenant_id: str, chunks: Sequence[KnowledgeChunk]) -> str:
        """Commit a new generation's rows, then persist its FAISS index.

        Returns:
            The new generation id.

        Raises:
            VectorStoreError: If the metadata transaction fails (nothing changed).
            PartialIngestionFailure: If the index could not be written after
                the metadata commit.
        """
        dimension = self._validate_chunks(tenant_id, chunks)
        generation = self.new_generation()

        with closing(self._connect()) as conn:
            try:
                conn.execute("BEGIN IMMEDIATE")
                cursor = conn.cursor()
                row_ids = self._insert_rows(
                    cursor, tenant_id, generation, chunks, store_vectors=False
                )
                previous = self._activate(cursor, tenant_id, generation, len(chunks))
                self._purge_inactive(cursor, tenant_id, generation)
                conn.commit()
            except (sqlite3.Error, VectorStoreError) as exc:
                conn.rollback()
                logger.exception("Metadata replace failed for tenant %s", tenant_id)
                if isinstance(exc, VectorStoreError):
                    raise
                msg = "Failed to write vector rows"
                raise VectorStoreError(msg) from exc

        try:
            self._write_index(tenant_id, generation, chunks, row_ids, dimension)
        except (RuntimeError, OSError) as exc:
            logger.exception(
                "Generation %s for tenant %s committed without an index",
                generation,
                tenant_id,
            )
            msg = "Vector rows were replaced but the index could not be saved"
            raise PartialIngestionFailure(msg, stage="replacing") from exc

        if previous and previous != generation:
            self._discard_index(tenant_id, previous)

        logger.info(
            "Tenant %s: FAISS generation %s active with %d vectors",
            tenant_id,
            generation,
            len(row_ids),
        )
        return generation

    def _write_index(
        self,
        tenant_id: str,
        generation: str,
        chunks: Sequence[KnowledgeChunk],
        row_ids: list[int],
        dimension: int,
    ) -> None:
        index = faiss.IndexIDMap(faiss.IndexFlatIP(max(dimension, 1)))
        if chunks:
            vectors = np.vstack([
                self._normalize_embedding(chunk.embedding)  # type: ignore[arg-type]
                for chunk in chunks
            ]).astype("float32")
            ids_array = np.asarray(row_ids, dtype="int64")
            index.add_with_ids(vectors, ids_array)  # pyright: ignore[reportCallIssue]

        path = self.index_path(tenant_id, generation)
        path.parent.mkdir(exist_ok=True, parents=True)
        faiss.write_index(index, str(path))
        self._indexes[generation] = index
        logger.info("Saved FAISS index with %d vectors to %s", index.ntotal, path)

    def _discard_index(self, tenant_id: str, generation: str) -> None:
        self._indexes.pop(generation, None)
        path = self.index_path(tenant_id, generation)
        try:
            path.unlink(missing_ok=True)
        except OSError:
            logger.warning("Could not remove superseded index %s", path)

    def delete_tenant(self, tenant_id: str) -> None:
        """Remove the tenant's rows, generation pointer and index files.

        Raises:
            VectorStoreError: If the metadata delete fails.
        """
        generation = self.active_generation(tenant_id)
        super().delete_tenant(tenant_id)
        if generation:
            self._indexes.pop(generation, None)

        tenant_dir = self._tenant_dir(tenant_id)
        if not tenant_dir.exists():
            return
        try:
            shutil.rmtree(tenant_dir)
        except OSError:
            logger.warning("Could not remove index directory %s", tenant_dir)

    def _load_index(self, tenant_id: str, generation: str) -> faiss.Index | None:
        index = self._indexes.get(generation)
        if index is not None:
            return index

        path = self.index_path(tenant_id, generation)
        if not path.exists():
            logger.error(
                "No FAISS index for tenant %s generation %s; re-run ingestion",
                tenant_id,
                generation,
            )
            return None

        index = faiss.read_index(str(path))
        self._indexes[generation] = index
        logger.info("Loaded FAISS index from disk with %d vectors", index.ntotal)
        return index

    def query(
        self,
        tenant_id: str,
        query_vector: np.ndarray,
        threshold: float,
        top_k: int,
    ) -> RetrievalResult:
        """Search the tenant's live generation through its FAISS index.

        Returns:
            Up to ``top_k`` (chunk, score) pairs with score >= ``threshold``,
            highest score first, ties in insertion order.

        Raises:
            VectorStoreError: On a metadata read failure or dimension mismatch.
        """
        generation = self.active_generation(tenant_id)
        if generation is None or top_k <= 0:
            return []

        index = self._load_index(tenant_id, generation)
        if index is None or index.ntotal == 0:
            return []

        normalized_query = self._normalize_embedding(np.asarray(query_vector))
        if normalized_query.shape[0] != index.d:
            msg = (
                f"Query dimension {normalized_query.shape[0]} does not match "
                f"FAISS index dimension {index.d}"
            )
            raise VectorStoreError(msg)

        raw_top_k = max(top_k, self.raw_top_k_multiplier * top_k)
        raw_top_k = min(raw_top_k, index.ntotal)
        scores, vector_ids = index.search(
            normalized_query.reshape(1, -1),
            raw_top_k,
        )  # pyright: ignore[reportCallIssue]

        candidates = {
            int(vector_id): float(score)
            for score, vector_id in zip(scores[0], vector_ids[0], strict=True)
            if int(vector_id) != -1 and float(score) >= threshold
        }
        if not candidates:
            return []

        placeholders = ",".join("?" * len(candidates))
        try:
            with closing(self._connect()) as conn:
                rows = conn.execute(
                    f"""
                    SELECT {ROW_COLUMNS}
                    FROM document_embeddings e
                    WHERE e.tenant_id = ? AND e.generation = ?
                        AND e.id IN ({placeholders})
                    """,  # noqa: S608
                    (tenant_id, generation, *candidates),
                ).fetchall()
        except sqlite3.Error as exc:
            logger.exception("Metadata lookup failed for tenant %s", tenant_id)
            msg = "Failed to read vector rows"
            raise VectorStoreError(msg) from exc

        ranked = sorted(rows, key=lambda row: (-candidates[int(row[0])], int(row[0])))
        return [
            (self._build_chunk_from_row(row), candidates[int(row[0])])
            for row in ranked[:top_k]
        ]
