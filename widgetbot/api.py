"""HTTP entry points for ingestion and chat, served with FastAPI.

The chat widget is embedded on arbitrary third-party origins, so every route
answers CORS pre-flight requests. Errors are returned as ``{"error": ...}``
with the status of the error's class.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from .config import config
from .conversation import ChatService
from .errors import INTERNAL_ERROR_MESSAGE, WidgetBotError
from .pipeline import IngestionPipeline, build_embedding_service
from .tenant_store import TenantStore
from .vector_store import get_vector_store

logger = config.get_logger(__name__)

CORS_ALLOWED_HEADERS = ["authorization", "x-client-info", "apikey", "content-type"]
TENANT_ID_ALIASES = AliasChoices("tenantId", "chatbotId", "tenant_id")


class IngestRequest(BaseModel):
    """Body of ``POST /ingest-embeddings``."""

    model_config = ConfigDict(extra="ignore")

    tenant_id: str | None = Field(default=None, validation_alias=TENANT_ID_ALIASES)


class ChatRequest(BaseModel):
    """Body of ``POST /chat-completion``.

    Either ``message`` + ``tenantId`` (stored tenant, retrieval) or
    ``messages`` + ``chatbotConfig`` (inline configuration, no retrieval).
    """

    model_config = ConfigDict(extra="ignore")

    message: str | None = None
    tenant_id: str | None = Field(default=None, validation_alias=TENANT_ID_ALIASES)
    conversation_history: list[Any] | None = Field(
        default=None,
        validation_alias=AliasChoices("conversationHistory", "conversation_history"),
    )
    email_notifications: bool | None = Field(
        default=None,
        validation_alias=AliasChoices("emailNotifications", "email_notifications"),
    )
    notification_email: str | None = Field(
        default=None,
        validation_alias=AliasChoices("notificationEmail", "notification_email"),
    )
    messages: list[Any] | None = None
    chatbot_config: dict[str, Any] | None = Field(
        default=None,
        validation_alias=AliasChoices("chatbotConfig", "chatbot_config"),
    )
    user_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("userApiKey", "user_api_key"),
    )

    @property
    def is_direct(self) -> bool:
        return self.messages is not None and self.message is None


@dataclass
class Services:
    """Collaborators shared by the route handlers."""

    pipeline: IngestionPipeline
    chat: ChatService


def build_services() -> Services:
    """Construct production services from configuration.

    Returns:
        Services wired to the configured stores and providers.
    """
    tenant_store = TenantStore()
    pipeline = IngestionPipeline(
        tenant_store=tenant_store,
        vector_store=get_vector_store(),
        embedding_service=build_embedding_service(),
    )
    return Services(
        pipeline=pipeline,
        chat=ChatService(tenant_store=tenant_store, pipeline=pipeline),
    )


def cors_headers(request: Request) -> dict[str, str]:
    """CORS headers for responses built outside ``CORSMiddleware``.

    Returns:
        ``Access-Control-Allow-Origin`` (and ``Vary``) for an allowed origin.
    """
    origins = config.get_cors_origins()
    if "*" in origins:
        return {"Access-Control-Allow-Origin": "*"}
    origin = request.headers.get("origin")
    if origin in origins:
        return {"Access-Control-Allow-Origin": origin, "Vary": "Origin"}
    return {}


async def widgetbot_error_handler(
    _request: Request, exc: WidgetBotError
) -> JSONResponse:
    if exc.status_code >= 500:  # noqa: PLR2004
        logger.error("Request failed: %s", exc.message)
    else:
        logger.info("Request rejected (%d): %s", exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


async def request_validation_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    logger.info("Malformed request body: %s", exc)
    return JSONResponse(status_code=400, content={"error": "Invalid request body"})


async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    # Runs in ServerErrorMiddleware, outside CORSMiddleware.
    logger.error("Unhandled error", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"error": INTERNAL_ERROR_MESSAGE},
        headers=cors_headers(request),
    )


def create_app(services: Services | None = None) -> FastAPI:
    """Create the FastAPI application.

    Args:
        services: Pre-built collaborators; built from configuration if None.

    Returns:
        The configured application.
    """
    app = FastAPI(
        title="WidgetBot",
        version="1.0.0",
        docs_url=None if config.is_production() else "/docs",
        redoc_url=None,
    )
    app.state.services = services or build_services()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.get_cors_origins(),
        allow_methods=["*"],
        allow_headers=CORS_ALLOWED_HEADERS,
    )
    app.add_exception_handler(WidgetBotError, widgetbot_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)

    @app.get("/health")
    def health(request: Request) -> dict[str, object]:
        pipeline: IngestionPipeline = request.app.state.services.pipeline
        return {
            "status": "ok",
            "vectorBackend": pipeline.vector_store.backend,
            "retrievalEnabled": pipeline.retrieval_enabled,
        }

    @app.post("/ingest-embeddings")
    def ingest_embeddings(body: IngestRequest, request: Request) -> dict[str, object]:
        """Rebuild a tenant's vector index from its knowledge text."""
        pipeline: IngestionPipeline = request.app.state.services.pipeline
        result = pipeline.ingest(body.tenant_id or "")
        return result.to_payload()

    @app.post("/chat-completion")
    def chat_completion(body: ChatRequest, request: Request) -> dict[str, str]:
        """Answer one chat message."""
        chat: ChatService = request.app.state.services.chat
        if body.is_direct:
            reply = chat.respond_direct(
                body.messages, body.chatbot_config, body.user_api_key
            )
        else:
            reply = chat.respond(
                body.message,
                body.tenant_id,
                body.conversation_history,
                email_notifications=body.email_notifications,
                notification_email=body.notification_email,
            )
        return {"response": reply}

    return app
