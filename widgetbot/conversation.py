"""Chat turn handling: tenant lookup, retrieval, prompt, completion, notify."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from .completion import CompletionGateway, resolve_api_key
from .config import config
from .errors import ValidationError, WidgetBotError
from .models import PREVIEW_TENANT_ID, ConversationTurn, Tenant
from .notifications import TranscriptNotifier
from .pipeline import IngestionPipeline
from .prompts import PromptComposer
from .tenant_store import TenantStore
from .vector_store import RetrievalResult

logger = config.get_logger(__name__)


def parse_turns(raw_turns: Iterable[Any] | None) -> list[ConversationTurn]:
    """Validate caller-supplied history entries.

    Returns:
        Parsed turns in order.

    Raises:
        ValidationError: If the history is not a list or an entry is malformed.
    """
    if raw_turns is None:
        return []
    if isinstance(raw_turns, (str, bytes, Mapping)):
        msg = "conversation history must be a list"
        raise ValidationError(msg)
    return [
        turn if isinstance(turn, ConversationTurn) else ConversationTurn.from_dict(turn)
        for turn in raw_turns
    ]


class ChatService:
    """Answers one chat message for a tenant.

    Holds no per-conversation state; the caller sends the history each time.
    """

    def __init__(  # noqa: PLR0913,PLR0917
        self,
        tenant_store: TenantStore | None = None,
        pipeline: IngestionPipeline | None = None,
        composer: PromptComposer | None = None,
        gateway: CompletionGateway | None = None,
        notifier: TranscriptNotifier | None = None,
        max_history_messages: int | None = None,
    ) -> None:
        """Initialize ChatService.

        Args:
            tenant_store: Tenant lookup.
            pipeline: Retrieval source; None answers from raw knowledge text.
            composer: System-prompt builder.
            gateway: Chat-completion client.
            notifier: Transcript email sender.
            max_history_messages: History cap. If None, uses
                config.MAX_HISTORY_MESSAGES.
        """
        self.tenant_store = tenant_store or TenantStore()
        self.pipeline = pipeline
        self.composer = composer or PromptComposer()
        self.gateway = gateway or CompletionGateway()
        self.notifier = notifier or TranscriptNotifier()
        self.max_history_messages = (
            config.MAX_HISTORY_MESSAGES
            if max_history_messages is None
            else max_history_messages
        )

    def _prepare_history(self, turns: list[ConversationTurn]) -> list[ConversationTurn]:
        """Drop caller-supplied system turns and keep the most recent messages.

        Returns:
            History safe to forward after the composed system prompt.
        """
        kept = [turn for turn in turns if turn.role != "system"]
        if len(kept) != len(turns):
            logger.warning(
                "Dropped %d system turns from history", len(turns) - len(kept)
            )
        if self.max_history_messages <= 0:
            return []
        return kept[-self.max_history_messages :]

    def _retrieve(self, tenant: Tenant, message: str) -> RetrievalResult:
        if self.pipeline is None or tenant.id == PREVIEW_TENANT_ID:
            return []
        # Blank-text ingestion leaves the old generation live; never serve it.
        if not tenant.rag_content.strip():
            return []
        try:
            return self.pipeline.retrieve(tenant.id, message)
        except WidgetBotError:
            logger.warning(
                "Retrieval failed for tenant %s; answering from full knowledge text",
                tenant.id,
                exc_info=True,
            )
            return []

    def respond(  # noqa: PLR0913
        self,
        message: str | None,
        tenant_id: str | None,
        conversation_history: Iterable[Any] | None = None,
        *,
        email_notifications: bool | None = None,
        notification_email: str | None = None,
    ) -> str:
        """Answer ``message`` as the tenant's chatbot.

        Args:
            message: The user's latest message.
            tenant_id: Tenant id, or ``"preview"`` for the demo tenant.
            conversation_history: Prior ``{role, content}`` turns.
            email_notifications: Overrides the tenant's notification flag.
            notification_email: Overrides the tenant's notification address.

        Returns:
            The assistant's reply.

        Raises:
            ValidationError: If the message or tenant id is missing.
            NotFoundError: If the tenant does not exist.
            ConfigurationError: If no completion key is resolvable.
            UpstreamError: If the completion API fails.
        """
        if not message or not message.strip() or not tenant_id:
            msg = "Message and tenantId are required"
            raise ValidationError(msg)

        history = self._prepare_history(parse_turns(conversation_history))
        tenant = self.tenant_store.get(tenant_id)
        api_key = resolve_api_key(tenant.config.openrouter_api_key)

        retrieval = self._retrieve(tenant, message)
        system_prompt = self.composer.compose(tenant, retrieval, history)
        logger.info(
            "Tenant %s: answering with %d retrieved chunks", tenant.id, len(retrieval)
        )
        reply = self.gateway.complete(system_prompt, history, message, api_key)

        settings = tenant.config.notifications
        send = (
            settings.email_notifications
            if email_notifications is None
            else email_notifications
        )
        recipient = notification_email or settings.notification_email
        if send and recipient:
            self.notifier.send_transcript(
                tenant,
                [
                    *history,
                    ConversationTurn(role="user", content=message),
                    ConversationTurn(role="assistant", content=reply),
                ],
                recipient,
            )

        return reply

    def respond_direct(
        self,
        messages: Iterable[Any] | None,
        chatbot_config: Mapping[str, Any] | None,
        user_api_key: str | None = None,
    ) -> str:
        """Answer from an inline widget configuration, without retrieval.

        The last user message is the question; earlier messages are history.

        Returns:
            The assistant's reply.

        Raises:
            ValidationError: If there is no user message.
            ConfigurationError: If no completion key is resolvable.
            UpstreamError: If the completion API fails.
        """
        turns = parse_turns(messages)
        last_user = next(
            (i for i in range(len(turns) - 1, -1, -1) if turns[i].role == "user"),
            None,
        )
        if last_user is None or not turns[last_user].content.strip():
            msg = "messages must include a user message"
            raise ValidationError(msg)

        tenant = Tenant.from_inline_config(chatbot_config)
        api_key = resolve_api_key(tenant.config.openrouter_api_key, user_api_key)
        history = self._prepare_history(turns[:last_user])
        system_prompt = self.composer.compose(tenant, [], history)
        return self.gateway.complete(
            system_prompt, history, turns[last_user].content, api_key
        )
