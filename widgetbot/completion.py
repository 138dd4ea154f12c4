"""Chat-completion gateway for the OpenAI-compatible OpenRouter API."""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

from openai import APIConnectionError, APIStatusError, OpenAI

from .config import config
from .errors import ConfigurationError, UpstreamError

if TYPE_CHECKING:
    from .models import ConversationTurn

logger = config.get_logger(__name__)

APOLOGY_MESSAGE = "I'm sorry, I couldn't process your request at the moment."


def resolve_api_key(*candidates: str | None) -> str:
    """Pick the first non-blank key, falling back to the shared default.

    Callers pass the tenant key before the request key.

    Returns:
        The API key to use.

    Raises:
        ConfigurationError: If no key is resolvable.
    """
    for candidate in (*candidates, config.get_openrouter_api_key()):
        if candidate and candidate.strip():
            return candidate.strip()
    msg = "OpenRouter API key not configured"
    raise ConfigurationError(msg)


class CompletionGateway:
    """Forwards a composed conversation to the chat-completion API."""

    def __init__(
        self,
        model: str | None = None,
        base_url: str | None = None,
        client_factory: Callable[[str], OpenAI] | None = None,
    ) -> None:
        """Configure the gateway.

        Args:
            model: Chat model. If None, uses config.CHAT_MODEL.
            base_url: API base URL. If None, uses config.OPENROUTER_BASE_URL.
            client_factory: Builds a client for an API key; keys differ per
                tenant so clients are built per call.
        """
        self.model = model or config.CHAT_MODEL
        self.base_url = base_url or config.OPENROUTER_BASE_URL
        self.client_factory = client_factory or self._default_client

    def _default_client(self, api_key: str) -> OpenAI:
        headers = config.get_api_headers()
        headers["HTTP-Referer"] = config.OPENROUTER_REFERER
        headers["X-Title"] = config.OPENROUTER_TITLE
        return OpenAI(
            api_key=api_key,
            base_url=self.base_url,
            default_headers=headers,
            timeout=config.HTTP_TIMEOUT_SECONDS,
            max_retries=0,
        )

    @staticmethod
    def build_messages(
        system_prompt: str,
        history: list[ConversationTurn],
        message: str,
    ) -> list[dict[str, str]]:
        """Arrange ``[system, *history, latest user turn]``.

        Returns:
            Messages in the provider's ``{role, content}`` shape.
        """
        return [
            {"role": "system", "content": system_prompt},
            *(turn.to_dict() for turn in history),
            {"role": "user", "content": message},
        ]

    def complete(
        self,
        system_prompt: str,
        history: list[ConversationTurn],
        message: str,
        api_key: str,
    ) -> str:
        """Run one completion and return the assistant's reply.

        Returns:
            The reply text, or a fixed apology when the provider sends no
            content.

        Raises:
            ConfigurationError: If ``api_key`` is blank.
            UpstreamError: If the provider fails.
        """
        if not api_key or not api_key.strip():
            msg = "OpenRouter API key not configured"
            raise ConfigurationError(msg)

        client = self.client_factory(api_key)
        try:
            response = client.chat.completions.create(
                model=self.model,
                messages=self.build_messages(system_prompt, history, message),  # type: ignore[arg-type]
                max_tokens=config.CHAT_MAX_TOKENS,
                temperature=config.CHAT_TEMPERATURE,
            )
        except APIStatusError as exc:
            logger.exception("Chat completion API returned status %s", exc.status_code)
            msg = f"OpenRouter API error: {exc.status_code}"
            raise UpstreamError(msg, status_code=exc.status_code) from exc
        except APIConnectionError as exc:
            logger.exception("Chat completion API unreachable")
            msg = "OpenRouter API unreachable"
            raise UpstreamError(msg) from exc

        choices = getattr(response, "choices", None) or []
        answer = choices[0].message.content if choices and choices[0].message else None
        if not answer or not answer.strip():
            logger.warning("Chat completion returned no content; sending apology")
            return APOLOGY_MESSAGE
        return answer.strip()
