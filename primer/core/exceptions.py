"""Custom exceptions for Personal Primer."""

from typing import Any, Optional


class PrimerError(Exception):
    """Base exception for Personal Primer."""

    def __init__(self, message: str, context: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}


class LLMError(PrimerError):
    """Generation service transport or API errors."""

    pass


class GenerationError(LLMError):
    """
    A generation response that cannot be coerced into the expected shape.

    Not retried at the parsing layer; aborts the invocation that made the call.
    """

    def __init__(
        self,
        message: str,
        shape: str,
        raw: str = "",
        context: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, context)
        self.shape = shape
        self.raw_excerpt = raw[:500]


class NoActiveArcError(PrimerError):
    """The user has no active arc; the caller must seed one."""

    def __init__(self, user_id: str, context: Optional[dict[str, Any]] = None):
        message = f"No active arc found for user {user_id}. Seed a starter arc first."
        super().__init__(message, context)
        self.user_id = user_id


class ArcStateError(PrimerError):
    """A write that would break arc lifecycle invariants."""

    pass


class BundleNotFoundError(PrimerError):
    """No bundle stored for the requested (user, date)."""

    def __init__(self, user_id: str, date_id: str, context: Optional[dict[str, Any]] = None):
        message = f"No bundle found for {user_id} on {date_id}"
        super().__init__(message, context)
        self.user_id = user_id
        self.date_id = date_id


class GenerationInProgressError(PrimerError):
    """Another invocation already holds the generation lock for (user, date)."""

    def __init__(self, user_id: str, date_id: str, context: Optional[dict[str, Any]] = None):
        message = f"Bundle generation already in progress for {user_id} on {date_id}"
        super().__init__(message, context)
        self.user_id = user_id
        self.date_id = date_id


class ValidationError(PrimerError):
    """Validation errors for caller input (not Pydantic)."""

    pass
