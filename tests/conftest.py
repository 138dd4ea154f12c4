"""Test configuration and fixtures for WidgetBot tests.

This module provides reusable test fixtures organized by functionality:
- Constants and test data
- Mock services and API responses
- Store fixtures (tenants, both vector backends)
- Pipeline, chat service and HTTP client factories
"""

import hashlib
import os
from unittest.mock import Mock, patch

import httpx
import numpy as np
import pytest
from fastapi.testclient import TestClient
from openai import APIStatusError

from widgetbot import (
    ChatbotConfig,
    ChatService,
    CompletionGateway,
    EmbeddingService,
    FaissVectorStore,
    IngestionPipeline,
    KnowledgeChunk,
    SQLiteVectorStore,
    Tenant,
    TenantStore,
    TextChunker,
    get_vector_store,
)
from widgetbot.api import Services, create_app
from widgetbot.models import NotificationSettings, PersonaConfig
from widgetbot.notifications import TranscriptNotifier


class TestConstants:
    """Centralized test constants to avoid repetition across test files."""

    # API Configuration
    TEST_API_KEY = "test-key"
    TEST_OPENROUTER_KEY = "or-test-key"
    DEFAULT_EMBEDDING_DIMENSION = 64

    # Text Chunking Configuration
    SMALL_CHUNK_SIZE = 50
    SMALL_MAX_CHUNKS = 5

    # Tenant fixtures
    BUSINESS_NAME = "Acme Shipping"
    CONTACT_PHONE = "555-0100"
    SHIPPING_FACT = "We ship within 3 days."


class MockEmbeddingService:
    """Mock embedding service for testing without API calls.

    Generates deterministic embeddings based on text content hash,
    ensuring consistent test results across runs.
    """

    def __init__(
        self, dimension: int = TestConstants.DEFAULT_EMBEDDING_DIMENSION
    ) -> None:
        self.dimension = dimension
        self.batches: list[list[str]] = []

    def get_embedding(self, text: str) -> np.ndarray:
        """Generate deterministic mock embedding based on text hash."""
        seed = int.from_bytes(
            hashlib.sha256(text.lower().encode("utf-8")).digest()[:8],
            byteorder="big",
            signed=False,
        )
        rng = np.random.default_rng(seed)
        embedding = rng.normal(0, 1, self.dimension)
        return (embedding / np.linalg.norm(embedding)).astype(np.float32)

    def embed(self, texts: list[str]) -> list[np.ndarray]:
        """Generate one mock embedding per text, recording the batch."""
        self.batches.append(list(texts))
        return [self.get_embedding(text) for text in texts]


def create_mock_openai_response(embeddings: list[list[float]]) -> Mock:
    """Create a mock OpenAI embeddings API response.

    Args:
        embeddings: List of embedding vectors to return.

    Returns:
        Mock object representing OpenAI embeddings API response.
    """
    mock_response = Mock()
    mock_response.data = [Mock(embedding=emb) for emb in embeddings]
    return mock_response


def create_mock_chat_response(content: str | None) -> Mock:
    """Create a mock OpenAI chat completion response.

    Args:
        content: The content for the chat completion response.

    Returns:
        Mock object representing OpenAI chat completion response.
    """
    mock_response = Mock()
    mock_response.choices = [Mock(message=Mock(content=content))]
    return mock_response


def make_status_error(status_code: int) -> Exception:
    """Build an ``openai.APIStatusError`` for ``status_code``."""
    request = httpx.Request("POST", "https://api.test/v1")
    response = httpx.Response(status_code, request=request)
    return APIStatusError("provider failed", response=response, body=None)


def make_chunks(
    tenant_id: str,
    vectors: list[list[float]],
    contents: list[str] | None = None,
) -> list[KnowledgeChunk]:
    """Build embedded chunks with explicit vectors."""
    contents = contents or [f"passage {i}" for i in range(len(vectors))]
    return [
        KnowledgeChunk(
            tenant_id=tenant_id,
            index=i,
            content=content,
            metadata={"source": "rag_content", "index": i},
            embedding=np.asarray(vector, dtype=np.float32),
        )
        for i, (content, vector) in enumerate(zip(contents, vectors, strict=True))
    ]


@pytest.fixture
def openai_embeddings_api_mock():
    """Patch OpenAI embeddings.create and return the mock."""
    with patch("openai.resources.embeddings.Embeddings.create") as mock_create:
        yield mock_create


@pytest.fixture
def openai_chat_api_mock():
    """Patch OpenAI chat.completions.create; answers ``Test response`` by default."""
    with patch("openai.resources.chat.completions.Completions.create") as mock_create:
        mock_create.return_value = create_mock_chat_response("Test response")
        yield mock_create


@pytest.fixture
def no_shared_openrouter_key():
    """Run with no shared chat-completion key in the environment."""
    with patch.dict(os.environ, {"OPENROUTER_API_KEY": ""}):
        yield


@pytest.fixture
def shared_openrouter_key():
    """Run with the shared chat-completion key set."""
    with patch.dict(
        os.environ, {"OPENROUTER_API_KEY": TestConstants.TEST_OPENROUTER_KEY}
    ):
        yield


@pytest.fixture
def embedding_service_factory():
    """Factory for creating EmbeddingService instances."""

    def _create_service(api_key=None, model=None):  # noqa: ANN202
        return EmbeddingService(
            api_key=api_key or TestConstants.TEST_API_KEY, model=model
        )

    return _create_service


@pytest.fixture
def embedding_service(embedding_service_factory):
    """Default EmbeddingService with test API key for most tests."""
    return embedding_service_factory()


@pytest.fixture
def mock_embedding_service():
    """Fresh MockEmbeddingService per test, so recorded batches are isolated."""
    return MockEmbeddingService()


@pytest.fixture
def text_chunker_small():
    """Text chunker with small chunks and a low cap."""
    return TextChunker(
        chunk_size=TestConstants.SMALL_CHUNK_SIZE,
        max_chunks=TestConstants.SMALL_MAX_CHUNKS,
    )


@pytest.fixture
def text_chunker_default():
    """Text chunker with production defaults."""
    return TextChunker()


@pytest.fixture
def tenant_store(tmp_path) -> TenantStore:
    """Temporary tenant store."""
    return TenantStore(tmp_path / "tenants.db")


@pytest.fixture
def temp_vector_store(tmp_path) -> SQLiteVectorStore:
    """Create temporary SQLite vector store for testing."""
    return SQLiteVectorStore(tmp_path / "vectors.db")


@pytest.fixture
def temp_faiss_store(tmp_path) -> FaissVectorStore:
    """Create temporary FAISS vector store for testing."""
    return FaissVectorStore(
        db_path=tmp_path / "faiss_meta.db",
        index_dir=tmp_path / "faiss",
    )


@pytest.fixture(params=["sqlite", "faiss"])
def vector_store(request, tmp_path):
    """Each vector backend in turn."""
    return get_vector_store(
        request.param,
        db_path=tmp_path / f"{request.param}.db",
        index_dir=tmp_path / "faiss",
    )


@pytest.fixture
def tenant_factory(tenant_store):
    """Factory that saves tenants with sensible defaults."""

    def _create_tenant(  # noqa: ANN202
        rag_content: str = TestConstants.SHIPPING_FACT,
        *,
        tenant_id: str = "",
        business_name: str = TestConstants.BUSINESS_NAME,
        contact_phone: str = TestConstants.CONTACT_PHONE,
        openrouter_api_key: str = "",
        notification_email: str = "",
        **persona_fields,
    ):
        tenant = Tenant(
            id=tenant_id,
            business_name=business_name,
            industry="Logistics",
            location="Springfield",
            contact_phone=contact_phone,
            rag_content=rag_content,
            config=ChatbotConfig(
                chatbot_name="Acme Bot",
                openrouter_api_key=openrouter_api_key,
                persona=PersonaConfig(**persona_fields),
                notifications=NotificationSettings(
                    email_notifications=bool(notification_email),
                    notification_email=notification_email,
                ),
            ),
        )
        return tenant_store.save(tenant)

    return _create_tenant


@pytest.fixture
def sample_tenant(tenant_factory):
    """A saved tenant whose knowledge text is the shipping fact."""
    return tenant_factory()


@pytest.fixture
def pipeline_factory(tenant_store, temp_vector_store, mock_embedding_service):
    """Factory for IngestionPipeline instances over temporary stores."""

    def _create_pipeline(  # noqa: ANN202
        vector_store=None,
        embedding_service=mock_embedding_service,
        chunker=None,
    ):
        return IngestionPipeline(
            tenant_store=tenant_store,
            vector_store=vector_store or temp_vector_store,
            embedding_service=embedding_service,
            chunker=chunker,
        )

    return _create_pipeline


@pytest.fixture
def pipeline(pipeline_factory):
    """Pipeline over the SQLite backend with mock embeddings."""
    return pipeline_factory()


@pytest.fixture
def mock_http_client():
    """httpx client mock whose POST succeeds."""
    client = Mock(spec=httpx.Client)
    client.post.return_value = httpx.Response(
        200, request=httpx.Request("POST", "https://api.resend.test/emails")
    )
    return client


@pytest.fixture
def notifier(mock_http_client):
    """Transcript notifier with a key and a mocked HTTP client."""
    return TranscriptNotifier(
        api_key="re-test-key",
        api_url="https://api.resend.test/emails",
        sender="Bot <bot@example.com>",
        http_client=mock_http_client,
    )


@pytest.fixture
def chat_service_factory(tenant_store, pipeline, notifier):
    """Factory for ChatService instances wired to the temporary stores."""

    def _create_chat_service(**overrides):  # noqa: ANN202
        kwargs = {
            "tenant_store": tenant_store,
            "pipeline": pipeline,
            "gateway": CompletionGateway(model="test/model"),
            "notifier": notifier,
        }
        kwargs.update(overrides)
        return ChatService(**kwargs)

    return _create_chat_service


@pytest.fixture
def chat_service(chat_service_factory):
    return chat_service_factory()


@pytest.fixture
def api_client(pipeline, chat_service):
    """HTTP client for the FastAPI app with temporary services."""
    app = create_app(Services(pipeline=pipeline, chat=chat_service))
    with TestClient(app) as client:
        yield client


@pytest.fixture
def chunk_factory():
    """Factory for embedded chunks with explicit vectors."""
    return make_chunks


@pytest.fixture
def status_error_factory():
    """Factory for provider ``APIStatusError`` instances."""
    return make_status_error


@pytest.fixture
def chat_response_factory():
    """Factory for mock chat completion responses."""
    return create_mock_chat_response


@pytest.fixture
def embeddings_response_factory():
    """Factory for mock embeddings responses."""
    return create_mock_openai_response
