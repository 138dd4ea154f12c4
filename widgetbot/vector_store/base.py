"""Shared helpers for SQLite-backed, tenant-scoped vector stores.

Rows are tagged with a generation id. ``tenant_generations`` points each
tenant at its active generation; queries only ever read that generation, so
a replace is visible all at once when the pointer flips.
"""

from __future__ import annotations

import json
import sqlite3
import uuid
from contextlib import closing
from pathlib import Path
from typing import TYPE_CHECKING, Any

import numpy as np

from widgetbot.config import config
from widgetbot.errors import VectorStoreError
from widgetbot.models import KnowledgeChunk

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = config.get_logger(__name__)

RetrievalResult = list[tuple[KnowledgeChunk, float]]

ROW_COLUMNS = """
    e.id,
    e.tenant_id,
    e.chunk_index,
    e.content,
    e.source,
    e.metadata,
    e.generation
"""


class BaseSQLiteStore:
    """Schema management and generation bookkeeping shared by both backends."""

    backend = "base"

    def __init__(self, db_path: Path) -> None:
        """Initialize metadata store and ensure schema exists."""
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(exist_ok=True, parents=True)
        self._create_tables()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self.db_path), timeout=30)

    def _create_tables(self) -> None:
        """Create generation and embedding tables if they don't exist."""
        with closing(self._connect()) as conn:
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS tenant_generations (
                    tenant_id TEXT PRIMARY KEY,
                    generation TEXT NOT NULL,
                    row_count INTEGER NOT NULL DEFAULT 0,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS document_embeddings (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    tenant_id TEXT NOT NULL,
                    generation TEXT NOT NULL,
                    chunk_index INTEGER NOT NULL,
                    content TEXT NOT NULL,
                    source TEXT NOT NULL,
                    metadata TEXT,
                    vector BLOB,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            cursor.execute(
                (
                    "CREATE INDEX IF NOT EXISTS idx_embeddings_tenant_generation "
                    "ON document_embeddings(tenant_id, generation, id)"
                ),
            )
            conn.commit()

    @staticmethod
    def new_generation() -> str:
        return uuid.uuid4().hex

    @staticmethod
    def _validate_chunks(tenant_id: str, chunks: Sequence[KnowledgeChunk]) -> int:
        """Check that every chunk belongs to the tenant and carries a vector.

        Returns:
            The shared embedding dimension, or 0 for an empty batch.

        Raises:
            VectorStoreError: On a missing vector, mixed dimensions or a chunk
                of another tenant.
        """
        dimension = 0
        for chunk in chunks:
            if chunk.tenant_id != tenant_id:
                msg = f"Chunk {chunk.index} belongs to tenant {chunk.tenant_id!r}"
                raise VectorStoreError(msg)
            if chunk.embedding is None:
                msg = f"Chunk {chunk.index} has no embedding"
                raise VectorStoreError(msg)
            size = int(np.asarray(chunk.embedding).shape[0])
            if dimension and size != dimension:
                msg = f"Embedding dimension {size} does not match {dimension}"
                raise VectorStoreError(msg)
            dimension = size
        return dimension

    @staticmethod
    def _insert_rows(
        cursor: sqlite3.Cursor,
        tenant_id: str,
        generation: str,
        chunks: Sequence[KnowledgeChunk],
        *,
        store_vectors: bool,
    ) -> list[int]:
        """Stage a generation's rows inside the caller's transaction.

        Returns:
            Row ids in chunk order.
        """
        row_ids: list[int] = []
        for chunk in chunks:
            vector = (
                np.asarray(chunk.embedding, dtype=np.float32).tobytes()
                if store_vectors and chunk.embedding is not None
                else None
            )
            cursor.execute(
                """
                INSERT INTO document_embeddings (
                    tenant_id,
                    generation,
                    chunk_index,
                    content,
                    source,
                    metadata,
                    vector
                )
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    tenant_id,
                    generation,
                    chunk.index,
                    chunk.content,
                    chunk.source,
                    json.dumps(chunk.metadata),
                    vector,
                ),
            )
            if cursor.lastrowid is None:
                msg = "Failed to insert embedding row"
                raise VectorStoreError(msg)
            row_ids.append(int(cursor.lastrowid))
        return row_ids

    @staticmethod
    def _activate(
        cursor: sqlite3.Cursor,
        tenant_id: str,
        generation: str,
        row_count: int,
    ) -> str | None:
        """Point the tenant at ``generation``.

        Returns:
            The previously active generation, if any.
        """
        cursor.execute(
            "SELECT generation FROM tenant_generations WHERE tenant_id = ?",
            (tenant_id,),
        )
        row = cursor.fetchone()
        cursor.execute(
            """
            INSERT INTO tenant_generations (tenant_id, generation, row_count)
            VALUES (?, ?, ?)
            ON CONFLICT(tenant_id) DO UPDATE SET
                generation = excluded.generation,
                row_count = excluded.row_count,
                updated_at = CURRENT_TIMESTAMP
            """,
            (tenant_id, generation, row_count),
        )
        return row[0] if row else None

    @staticmethod
    def _purge_inactive(
        cursor: sqlite3.Cursor, tenant_id: str, keep_generation: str
    ) -> int:
        """Delete every generation of the tenant except ``keep_generation``.

        Returns:
            Number of rows removed.
        """
        cursor.execute(
            "DELETE FROM document_embeddings WHERE tenant_id = ? AND generation != ?",
            (tenant_id, keep_generation),
        )
        return cursor.rowcount

    def active_generation(self, tenant_id: str) -> str | None:
        """Return the tenant's live generation id, or None if never ingested."""  # noqa: DOC201
        with closing(self._connect()) as conn:
            row = conn.execute(
                "SELECT generation FROM tenant_generations WHERE tenant_id = ?",
                (tenant_id,),
            ).fetchone()
        return row[0] if row else None

    def count(self, tenant_id: str) -> int:
        """Return the number of rows in the tenant's live generation."""  # noqa: DOC201
        with closing(self._connect()) as conn:
            row = conn.execute(
                "SELECT row_count FROM tenant_generations WHERE tenant_id = ?",
                (tenant_id,),
            ).fetchone()
        return int(row[0]) if row else 0

    def list_chunks(self, tenant_id: str) -> list[KnowledgeChunk]:
        """Return the live generation's chunks in insertion order."""  # noqa: DOC201
        with closing(self._connect()) as conn:
            rows = conn.execute(
                f"""
                SELECT {ROW_COLUMNS}
                FROM document_embeddings e
                JOIN tenant_generations g
                    ON e.tenant_id = g.tenant_id AND e.generation = g.generation
                WHERE e.tenant_id = ?
                ORDER BY e.id
                """,  # noqa: S608
                (tenant_id,),
            ).fetchall()
        return [self._build_chunk_from_row(row) for row in rows]

    def delete_tenant(self, tenant_id: str) -> None:
        """Remove every row and the generation pointer of a tenant.

        Raises:
            VectorStoreError: If the delete fails.
        """
        with closing(self._connect()) as conn:
            try:
                conn.execute("BEGIN IMMEDIATE")
                conn.execute(
                    "DELETE FROM document_embeddings WHERE tenant_id = ?",
                    (tenant_id,),
                )
                conn.execute(
                    "DELETE FROM tenant_generations WHERE tenant_id = ?",
                    (tenant_id,),
                )
                conn.commit()
            except sqlite3.Error as exc:
                conn.rollback()
                logger.exception("Failed to delete vectors for tenant %s", tenant_id)
                msg = "Failed to delete vector rows"
                raise VectorStoreError(msg) from exc
        logger.info("Deleted vector rows for tenant %s", tenant_id)

    @staticmethod
    def _build_chunk_from_row(
        row: tuple,
        *,
        embedding: np.ndarray | None = None,
    ) -> KnowledgeChunk:
        """Create a KnowledgeChunk from a ``ROW_COLUMNS`` row.

        Returns:
            KnowledgeChunk hydrated with metadata and optional embedding.
        """
        row_id, tenant_id, chunk_index, content, source, metadata_json, generation = (
            row
        )
        metadata: dict[str, Any] = json.loads(metadata_json) if metadata_json else {}
        metadata["row_id"] = row_id
        metadata["generation"] = generation
        return KnowledgeChunk(
            tenant_id=tenant_id,
            index=chunk_index,
            content=content,
            source=source,
            metadata=metadata,
            embedding=embedding,
        )

    @staticmethod
    def rank(
        scores: np.ndarray,
        threshold: float,
        top_k: int,
    ) -> list[int]:
        """Order candidate positions by descending score.

        Positions are in insertion order, so the stable sort breaks ties by
        insertion order.

        Returns:
            At most ``top_k`` positions whose score is at least ``threshold``.
        """
        if top_k <= 0 or scores.size == 0:
            return []
        order = np.argsort(-scores, kind="stable")
        return [int(i) for i in order if scores[i] >= threshold][:top_k]

    def replace_all(
        self, tenant_id: str, chunks: Sequence[KnowledgeChunk]
    ) -> str:  # pragma: no cover - implemented by backends
        """Replace the tenant's rows with ``chunks`` as a new generation."""
        raise NotImplementedError

    def query(
        self,
        tenant_id: str,
        query_vector: np.ndarray,
        threshold: float,
        top_k: int,
    ) -> RetrievalResult:  # pragma: no cover - implemented by backends
        """Return the tenant's nearest chunks above ``threshold``."""
        raise NotImplementedError
