"""Data models for tenants, knowledge chunks and conversations."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import numpy as np

from .errors import ValidationError

PREVIEW_TENANT_ID = "preview"
VALID_ROLES = frozenset({"user", "assistant", "system"})

_TRUE_STRINGS = frozenset({"1", "true", "yes", "on"})


def _pick(raw: Mapping[str, Any], *keys: str, default: Any = None) -> Any:  # noqa: ANN401
    """Return the first present, non-None value among ``keys``."""  # noqa: DOC201
    for key in keys:
        value = raw.get(key)
        if value is not None:
            return value
    return default


def _as_text(value: Any) -> str:  # noqa: ANN401
    return "" if value is None else str(value).strip()


def _as_bool(value: Any) -> bool:  # noqa: ANN401
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return bool(value)


@dataclass
class PersonaConfig:
    """How the agent presents itself and how long its answers are."""

    agent_name: str = ""
    agent_role: str = "Customer Support Agent"
    tone: str = "friendly"
    chattiness: int = 1
    response_style: str = "conversational"
    special_instructions: str = ""
    language: str = "en"


@dataclass
class NotificationSettings:
    """Transcript email settings."""

    email_notifications: bool = False
    notification_email: str = ""

    @property
    def enabled(self) -> bool:
        return self.email_notifications and bool(self.notification_email)


@dataclass
class ChatbotConfig:
    """Typed per-tenant configuration, built once by ``from_dict``."""

    chatbot_name: str = "Untitled Chatbot"
    greeting: str = "Hello! How can I help you today?"
    openrouter_api_key: str = ""
    persona: PersonaConfig = field(default_factory=PersonaConfig)
    notifications: NotificationSettings = field(default_factory=NotificationSettings)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any] | None) -> ChatbotConfig:
        """Build a config from the UI's loosely-typed JSON, filling defaults.

        Both the wizard's camelCase keys and snake_case keys are accepted.

        Returns:
            A fully-populated ChatbotConfig.

        Raises:
            ValidationError: If ``raw`` is not a mapping or chattiness is not
                an integer.
        """
        if raw is None:
            raw = {}
        if not isinstance(raw, Mapping):
            msg = "chatbot config must be an object"
            raise ValidationError(msg)

        defaults = PersonaConfig()
        chattiness_raw = _pick(raw, "chattiness", default=defaults.chattiness)
        if isinstance(chattiness_raw, bool):
            msg = "chattiness must be an integer"
            raise ValidationError(msg)
        try:
            chattiness = int(chattiness_raw)
        except (TypeError, ValueError) as exc:
            msg = "chattiness must be an integer"
            raise ValidationError(msg) from exc

        persona = PersonaConfig(
            agent_name=_as_text(_pick(raw, "agentName", "agent_name")),
            agent_role=_as_text(_pick(raw, "agentRole", "agent_role"))
            or defaults.agent_role,
            tone=_as_text(_pick(raw, "toneOfVoice", "tone")) or defaults.tone,
            chattiness=chattiness,
            response_style=_as_text(_pick(raw, "responseStyle", "response_style"))
            or defaults.response_style,
            special_instructions=_as_text(
                _pick(raw, "specialInstructions", "special_instructions")
            ),
            language=_as_text(_pick(raw, "defaultLanguage", "language"))
            or defaults.language,
        )
        notifications = NotificationSettings(
            email_notifications=_as_bool(
                _pick(raw, "emailNotifications", "email_notifications", default=False)
            ),
            notification_email=_as_text(
                _pick(raw, "notificationEmail", "notification_email")
            ),
        )
        return cls(
            chatbot_name=_as_text(_pick(raw, "chatbotName", "chatbot_name"))
            or cls.chatbot_name,
            greeting=_as_text(_pick(raw, "greeting")) or cls.greeting,
            openrouter_api_key=_as_text(
                _pick(raw, "openRouterApiKey", "openrouter_api_key")
            ),
            persona=persona,
            notifications=notifications,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize using the UI's camelCase keys.

        Returns:
            JSON-ready mapping that ``from_dict`` reads back unchanged.
        """
        return {
            "chatbotName": self.chatbot_name,
            "greeting": self.greeting,
            "openRouterApiKey": self.openrouter_api_key,
            "agentName": self.persona.agent_name,
            "agentRole": self.persona.agent_role,
            "toneOfVoice": self.persona.tone,
            "chattiness": self.persona.chattiness,
            "responseStyle": self.persona.response_style,
            "specialInstructions": self.persona.special_instructions,
            "defaultLanguage": self.persona.language,
            "emailNotifications": self.notifications.email_notifications,
            "notificationEmail": self.notifications.notification_email,
        }


@dataclass
class Tenant:
    """One business's configured chatbot."""

    id: str
    business_name: str = ""
    industry: str = ""
    location: str = ""
    contact_phone: str = ""
    rag_content: str = ""
    config: ChatbotConfig = field(default_factory=ChatbotConfig)
    created_at: str | None = None
    updated_at: str | None = None

    @classmethod
    def preview(cls) -> Tenant:
        """Demo tenant answered without a store lookup.

        Returns:
            The built-in preview tenant.
        """
        return cls(
            id=PREVIEW_TENANT_ID,
            business_name="Preview Chatbot",
            industry="Demo",
            location="Preview Mode",
            contact_phone="N/A",
            rag_content="This is a preview of the chatbot. You can ask me anything!",
        )

    @classmethod
    def from_inline_config(cls, raw: Mapping[str, Any] | None) -> Tenant:
        """Build an unsaved tenant from a widget-supplied ``chatbotConfig``.

        Returns:
            Tenant with id ``inline`` carrying the supplied business fields.

        Raises:
            ValidationError: If ``raw`` is not a mapping.
        """
        if raw is None:
            raw = {}
        if not isinstance(raw, Mapping):
            msg = "chatbotConfig must be an object"
            raise ValidationError(msg)
        chatbot_config = ChatbotConfig.from_dict(raw)
        name = _as_text(_pick(raw, "name"))
        if name:
            chatbot_config.chatbot_name = name
        return cls(
            id="inline",
            business_name=_as_text(_pick(raw, "businessName", "business_name")),
            industry=_as_text(_pick(raw, "industry", "industryType")),
            location=_as_text(_pick(raw, "location")),
            contact_phone=_as_text(_pick(raw, "contactPhone", "contact_phone")),
            rag_content=_as_text(_pick(raw, "ragContent", "rag_content")),
            config=chatbot_config,
        )


@dataclass
class KnowledgeChunk:
    """A passage of tenant knowledge text, optionally with its embedding."""

    tenant_id: str
    index: int
    content: str
    source: str = "rag_content"
    metadata: dict[str, Any] = field(default_factory=dict)
    embedding: np.ndarray | None = None


@dataclass
class ConversationTurn:
    """A single message in the caller-held conversation."""

    role: str
    content: str

    @classmethod
    def from_dict(cls, raw: Any) -> ConversationTurn:  # noqa: ANN401
        """Validate one ``{role, content}`` entry from a request payload.

        Returns:
            The parsed turn.

        Raises:
            ValidationError: If the entry is malformed or the role is unknown.
        """
        if not isinstance(raw, Mapping):
            msg = "conversation entries must be objects with role and content"
            raise ValidationError(msg)
        role = _as_text(raw.get("role")).lower()
        if role not in VALID_ROLES:
            msg = f"Unsupported conversation role: {raw.get('role')!r}"
            raise ValidationError(msg)
        content = raw.get("content")
        if not isinstance(content, str):
            msg = "conversation content must be a string"
            raise ValidationError(msg)
        return cls(role=role, content=content)

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}
