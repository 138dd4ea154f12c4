"""SQLite vector storage with numpy brute-force similarity search."""

from __future__ import annotations

import sqlite3
from contextlib import closing
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np

from widgetbot.config import config
from widgetbot.errors import VectorStoreError
from widgetbot.vector_store.base import ROW_COLUMNS, BaseSQLiteStore, RetrievalResult

if TYPE_CHECKING:
    from collections.abc import Sequence

    from widgetbot.models import KnowledgeChunk

logger = config.get_logger(__name__)


class SQLiteVectorStore(BaseSQLiteStore):
    """Vectors stored as float32 BLOBs next to their chunk rows.

    Insert, pointer flip and cleanup of the previous generation share one
    transaction, so a failed replace leaves the prior index untouched.
    """

    backend = "sqlite"

    def __init__(self, db_path: Path = Path("data/widgetbot.db")) -> None:
        """Initialize the SQLiteVectorStore.

        Args:
            db_path: Path to the SQLite database file.
        """
        super().__init__(db_path)

    def replace_all(self, tenant_id: str, chunks: Sequence[KnowledgeChunk]) -> str:
        """Atomically replace the tenant's rows with a new generation.

        Returns:
            The new generation id.

        Raises:
            VectorStoreError: If validation or the transaction fails.
        """
        self._validate_chunks(tenant_id, chunks)
        generation = self.new_generation()

        with closing(self._connect()) as conn:
            try:
                conn.execute("BEGIN IMMEDIATE")
                cursor = conn.cursor()
                self._insert_rows(
                    cursor, tenant_id, generation, chunks, store_vectors=True
                )
                previous = self._activate(cursor, tenant_id, generation, len(chunks))
                purged = self._purge_inactive(cursor, tenant_id, generation)
                conn.commit()
            except (sqlite3.Error, VectorStoreError) as exc:
                conn.rollback()
                logger.exception("Replace failed for tenant %s", tenant_id)
                if isinstance(exc, VectorStoreError):
                    raise
                msg = "Failed to write vector rows"
                raise VectorStoreError(msg) from exc

        logger.info(
            "Tenant %s: generation %s active with %d rows (replaced %s, purged %d)",
            tenant_id,
            generation,
            len(chunks),
            previous,
            purged,
        )
        return generation

    @staticmethod
    def cosine_similarity(
        query_embedding: np.ndarray,
        embeddings: np.ndarray,
    ) -> np.ndarray:
        """Calculate cosine similarity between query and stored embeddings.

        Zero vectors score 0 instead of producing NaN.

        Returns:
            np.ndarray: Array of cosine similarity scores
                    between the query and each stored embedding.
        """
        query_norm = np.linalg.norm(query_embedding)
        if query_norm == 0:
            return np.zeros(embeddings.shape[0], dtype=np.float32)
        doc_norms = np.linalg.norm(embeddings, axis=1)
        doc_norms[doc_norms == 0] = 1.0
        return (embeddings @ query_embedding) / (doc_norms * query_norm)

    def query(
        self,
        tenant_id: str,
        query_vector: np.ndarray,
        threshold: float,
        top_k: int,
    ) -> RetrievalResult:
        """Search the tenant's live generation.

        Returns:
            Up to ``top_k`` (chunk, score) pairs with score >= ``threshold``,
            highest score first.

        Raises:
            VectorStoreError: On a read failure or a query of the wrong dimension.
        """
        try:
            with closing(self._connect()) as conn:
                rows = conn.execute(
                    f"""
                    SELECT {ROW_COLUMNS}, e.vector
                    FROM document_embeddings e
                    JOIN tenant_generations g
                        ON e.tenant_id = g.tenant_id AND e.generation = g.generation
                    WHERE e.tenant_id = ?
                    ORDER BY e.id
                    """,  # noqa: S608
                    (tenant_id,),
                ).fetchall()
        except sqlite3.Error as exc:
            logger.exception("Vector query failed for tenant %s", tenant_id)
            msg = "Failed to read vector rows"
            raise VectorStoreError(msg) from exc

        if not rows:
            return []

        embeddings = np.vstack([
            np.frombuffer(row[-1], dtype=np.float32) for row in rows
        ])
        query = np.asarray(query_vector, dtype=np.float32)
        if query.shape[0] != embeddings.shape[1]:
            msg = (
                f"Query dimension {query.shape[0]} does not match "
                f"stored dimension {embeddings.shape[1]}"
            )
            raise VectorStoreError(msg)

        similarities = self.cosine_similarity(query, embeddings)
        results: RetrievalResult = []
        for position in self.rank(similarities, threshold, top_k):
            chunk = self._build_chunk_from_row(rows[position][:-1])
            score = float(similarities[position])
            logger.debug("Retrieved chunk %d with similarity %.4f", chunk.index, score)
            results.append((chunk, score))

        logger.info(
            "Tenant %s: %d of %d chunks above threshold %.2f",
            tenant_id,
            len(results),
            len(rows),
            threshold,
        )
        return results
