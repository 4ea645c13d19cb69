from __future__ import annotations


class SafepragError(Exception):
    """Base class for domain errors raised to the calling layer."""


class PreconditionError(SafepragError):
    """Required context is missing (e.g. operator identity not configured)."""


class NotFoundError(SafepragError, LookupError):
    """A referenced order or schedule does not exist."""


class ValidationError(SafepragError, ValueError):
    """A business rule was violated; nothing was written."""


class DocumentGenerationError(SafepragError):
    """The document bridge failed after the order state was already persisted."""

    def __init__(self, message: str, *, order_id: str | None = None):
        super().__init__(message)
        self.order_id = order_id
