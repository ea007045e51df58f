"""
Error taxonomy and failure envelope.

Every failure the core can explain is raised as a KnownError subclass.
The API layer renders them through a single exception handler, so
endpoints never build error responses by hand.

INVARIANT: validation and authorization errors are raised before any
write is issued. Only InternalError may be raised after a write, and only
after the transaction has been rolled back.
"""

from enum import Enum

from pydantic import BaseModel, Field


class FailureKind(str, Enum):
    """Classification of failure types."""

    # Input validation failures
    INVALID_INPUT = "invalid_input"

    # Identity failures
    UNAUTHENTICATED = "unauthenticated"
    FORBIDDEN = "forbidden"

    # Resource failures
    NOT_FOUND = "not_found"

    # Protocol violations
    INVALID_STATE = "invalid_state"
    CARD_NOT_OWNED = "card_not_owned"
    CARD_ALREADY_SELECTED = "card_already_selected"

    # Throttling
    RATE_LIMITED = "rate_limited"

    # Store failures
    INTERNAL = "internal"


class FailureDetail(BaseModel):
    """Detailed information about a failure."""

    kind: FailureKind = Field(
        ...,
        description="Classification of the failure",
    )
    message: str = Field(
        ...,
        description="User-appropriate explanation of what went wrong",
    )
    detail: str | None = Field(
        default=None,
        description="Additional technical detail (optional)",
    )
    suggestion: str | None = Field(
        default=None,
        description="Suggested action for the user",
    )


class ErrorResponse(BaseModel):
    """Body returned for every KnownError."""

    detail: str
    failure: FailureDetail


class KnownError(Exception):
    """
    Base class for exceptions that represent known, explainable failures.

    Subclass this for errors where the system knows exactly what went wrong.
    """

    kind: FailureKind = FailureKind.INVALID_INPUT
    status_code: int = 400

    def __init__(
        self,
        message: str,
        detail: str | None = None,
        suggestion: str | None = None,
    ):
        self.message = message
        self.detail = detail
        self.suggestion = suggestion
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to the error response body."""
        return ErrorResponse(
            detail=self.message,
            failure=FailureDetail(
                kind=self.kind,
                message=self.message,
                detail=self.detail,
                suggestion=self.suggestion,
            ),
        )


class ValidationError(KnownError):
    """Bad input shape or range, or a request the current state cannot satisfy."""

    kind = FailureKind.INVALID_INPUT
    status_code = 400


class AuthError(KnownError):
    """No authenticated user on the request."""

    kind = FailureKind.UNAUTHENTICATED
    status_code = 401


class AuthorizationError(KnownError):
    """Authenticated user is not allowed to act on the resource."""

    kind = FailureKind.FORBIDDEN
    status_code = 403


class NotFoundError(KnownError):
    """Referenced entity does not exist (or is not visible to the caller)."""

    kind = FailureKind.NOT_FOUND
    status_code = 404


class InvalidStateError(KnownError):
    """Attempted a transition the battle state machine does not allow."""

    kind = FailureKind.INVALID_STATE
    status_code = 409


class CardNotOwnedError(KnownError):
    """Caller tried to stake or select a card they do not own."""

    kind = FailureKind.CARD_NOT_OWNED
    status_code = 403

    def __init__(self, card_id: str):
        self.card_id = card_id
        super().__init__(
            message="You do not own this card.",
            detail=f"card_id={card_id}",
        )


class CardAlreadySelectedError(KnownError):
    """Caller already submitted a card for this battle."""

    kind = FailureKind.CARD_ALREADY_SELECTED
    status_code = 409

    def __init__(self, battle_id: str):
        self.battle_id = battle_id
        super().__init__(
            message="You have already selected a card for this battle.",
            detail=f"battle_id={battle_id}",
            suggestion="Wait for your opponent to select their card.",
        )


class RateLimitExceededError(KnownError):
    """Client exceeded the request budget of a rate-limited endpoint."""

    kind = FailureKind.RATE_LIMITED
    status_code = 429

    def __init__(self, client_hash: str, limit: int, window_seconds: int):
        self.client_hash = client_hash
        self.limit = limit
        self.window_seconds = window_seconds
        super().__init__(
            message=f"Too many requests. Limit is {limit} per {window_seconds} seconds.",
            detail=f"client={client_hash}",
            suggestion="Wait a moment and try again.",
        )


class InternalError(KnownError):
    """Unexpected store failure. Nothing was persisted."""

    kind = FailureKind.INTERNAL
    status_code = 500

    def __init__(self, message: str, detail: str | None = None):
        super().__init__(
            message=message,
            detail=detail,
            suggestion="The operation is safe to retry.",
        )
