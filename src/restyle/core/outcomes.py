"""Result types for gateway-backed operations.

Every clothing edit resolves to exactly one :data:`EditOutcome` variant.
Gateway failures are values, not exceptions: the orchestrator never raises
past its boundary and the API layer renders each variant with its own
user-facing message.

Operations that return plain data instead of an image (clothing analysis,
outfit suggestions) raise :class:`GatewayError`, which wraps the same
failure variants.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Union


@dataclass(frozen=True)
class EditSuccess:
    """The gateway returned an edited image.

    Attributes:
        edited_image_uri: URL or ``data:`` URI of the generated image.
        sanitized: Whether the prompt had unsafe terms removed.
        removed_terms: The removed terms, in order of appearance.
        cleaned_prompt: The prompt actually forwarded to the model.
    """

    kind: ClassVar[str] = "success"

    edited_image_uri: str
    sanitized: bool = False
    removed_terms: tuple[str, ...] = ()
    cleaned_prompt: str | None = None

    @property
    def message(self) -> str:
        return "Your clothing has been changed successfully"


@dataclass(frozen=True)
class BlockedByFilter:
    """The model's content-safety filter stopped generation."""

    kind: ClassVar[str] = "blocked_by_filter"

    reason: str = (
        "The AI safety filters blocked this request. Please use a more neutral clothing "
        'description (e.g., "black floral dress" or "blue denim jacket").'
    )

    @property
    def message(self) -> str:
        return self.reason


@dataclass(frozen=True)
class Refused:
    """The model declined the request."""

    kind: ClassVar[str] = "refused"

    reason: str = "The AI declined this request. Try a different clothing description."

    @property
    def message(self) -> str:
        return self.reason


@dataclass(frozen=True)
class RateLimited:
    """The gateway answered HTTP 429."""

    kind: ClassVar[str] = "rate_limited"

    @property
    def message(self) -> str:
        return "Rate limit exceeded. Please try again in a moment."


@dataclass(frozen=True)
class PaymentRequired:
    """The gateway answered HTTP 402."""

    kind: ClassVar[str] = "payment_required"

    @property
    def message(self) -> str:
        return "AI service credits depleted. Please add credits to continue."


@dataclass(frozen=True)
class UnknownFailure:
    """Any other failure: unexpected status, transport error, missing image."""

    kind: ClassVar[str] = "unknown_failure"

    detail: str = "An unexpected error occurred. Please try again."

    @property
    def message(self) -> str:
        return self.detail


EditOutcome = Union[EditSuccess, BlockedByFilter, Refused, RateLimited, PaymentRequired, UnknownFailure]

FailureOutcome = Union[BlockedByFilter, Refused, RateLimited, PaymentRequired, UnknownFailure]


class GatewayError(Exception):
    """Raised by data-returning gateway operations when the call fails.

    Attributes:
        outcome: The failure variant describing what went wrong.
    """

    def __init__(self, outcome: FailureOutcome):
        super().__init__(outcome.message)
        self.outcome = outcome
