"""Vector store adapters and factory."""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal

from widgetbot.config import config

from .base import BaseSQLiteStore, RetrievalResult
from .faiss_store import FaissVectorStore
from .sqlite_store import SQLiteVectorStore

if TYPE_CHECKING:
    from pathlib import Path

VectorBackend = Literal["faiss", "sqlite"]


def get_vector_store(
    store: VectorBackend | str | None = None,
    *,
    db_path: Path | None = None,
    index_dir: Path | None = None,
    raw_top_k_multiplier: int | None = None,
) -> FaissVectorStore | SQLiteVectorStore:
    """Return a configured vector store instance.

    Raises:
        ValueError: If an unsupported backend is requested.
    """
    backend = (store or config.VECTOR_BACKEND).lower()
    if db_path is None:
        db_path = config.VECTOR_STORE_DB_PATH

    if backend == "faiss":
        return FaissVectorStore(
            db_path=db_path,
            index_dir=index_dir if index_dir is not None else config.FAISS_INDEX_DIR,
            raw_top_k_multiplier=(
                raw_top_k_multiplier
                if raw_top_k_multiplier is not None
                else config.VECTOR_RAW_TOP_K_MULTIPLIER
            ),
        )

    if backend == "sqlite":
        return SQLiteVectorStore(db_path=db_path)

    msg = f"Unsupported vector store backend: {store}"
    raise ValueError(msg)


__all__ = [
    "BaseSQLiteStore",
    "FaissVectorStore",
    "RetrievalResult",
    "SQLiteVectorStore",
    "VectorBackend",
    "get_vector_store",
]
