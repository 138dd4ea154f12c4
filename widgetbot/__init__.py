"""WidgetBot - hosted, knowledge-grounded chatbots for small businesses."""

from .completion import CompletionGateway
from .conversation import ChatService
from .document_processing import DocumentLoader, TextChunker
from .embeddings import EmbeddingService
from .models import ChatbotConfig, ConversationTurn, KnowledgeChunk, Tenant
from .pipeline import IngestionPipeline, IngestionResult
from .prompts import PromptComposer
from .tenant_store import TenantStore
from .vector_store import FaissVectorStore, SQLiteVectorStore, get_vector_store

__all__ = [
    "ChatService",
    "ChatbotConfig",
    "CompletionGateway",
    "ConversationTurn",
    "DocumentLoader",
    "EmbeddingService",
    "FaissVectorStore",
    "IngestionPipeline",
    "IngestionResult",
    "KnowledgeChunk",
    "PromptComposer",
    "SQLiteVectorStore",
    "Tenant",
    "TenantStore",
    "TextChunker",
    "get_vector_store",
]
