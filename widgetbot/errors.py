"""Error taxonomy shared by ingestion, retrieval and chat.

Every error carries the HTTP status it maps to. ``message`` is safe to show
to the caller; provider details go to the log only.
"""

from __future__ import annotations

INTERNAL_ERROR_MESSAGE = "Internal server error"


class WidgetBotError(Exception):
    """Base class for all errors surfaced by the service.

    Args:
        message: Caller-facing description.
        status_code: HTTP status the entry points answer with.
        stage: Ingestion stage at which the error occurred, if any.
    """

    default_status = 500

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        stage: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code or self.default_status
        self.stage = stage

    def to_payload(self) -> dict[str, str]:
        """Render the error as a JSON response body.

        Returns:
            Mapping with an ``error`` key and, for ingestion failures, ``stage``.
        """
        payload = {"error": self.message}
        if self.stage:
            payload["stage"] = self.stage
        return payload


class ValidationError(WidgetBotError):
    """A required field is missing or malformed."""

    default_status = 400


class NotFoundError(WidgetBotError):
    """The requested tenant does not exist."""

    default_status = 404

    def __init__(self, message: str = "Chatbot not found", **kwargs) -> None:  # noqa: ANN003
        super().__init__(message, **kwargs)


class ConfigurationError(WidgetBotError):
    """No usable credential could be resolved."""

    default_status = 400


class EmbeddingProviderError(WidgetBotError):
    """The embedding API failed or returned a malformed payload."""


class UpstreamError(WidgetBotError):
    """The chat-completion API answered with a non-success status."""


class VectorStoreError(WidgetBotError):
    """Reading or writing the vector index failed."""


class PartialIngestionFailure(VectorStoreError):
    """New metadata was committed but its vector index was not persisted.

    The tenant has no queryable index until ingestion is re-run.
    """
