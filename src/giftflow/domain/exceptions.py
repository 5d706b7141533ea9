"""Domain-level exceptions.

All failures are expressed as subclasses of DomainException so the CLI layer
can catch them uniformly and display user-friendly messages.  The four
families map to how a caller is expected to react:

- ValidationError: caller-fixable input, never retried.
- ConflictError: the input was valid against a stale view of the world;
  re-fetch current state and retry with adjusted input.
- TransientError: upstream hiccup, retried internally with backoff.
- FatalError: the retry budget is exhausted and an operator has to look.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from giftflow.domain.model.value_objects import Money


class DomainException(Exception):
    """Base class for all domain errors."""


class ValidationError(DomainException):
    """A business rule or invariant was violated."""


class BelowMinimum(ValidationError):
    """A contribution is smaller than the campaign's minimum."""


class EntityNotFoundError(DomainException):
    """A requested entity does not exist."""


class ConflictError(DomainException):
    """The request lost against the current stored state."""


class ExceedsTarget(ConflictError):
    """Admitting the contribution would push the campaign past its target."""

    def __init__(self, message: str, remaining: Money) -> None:
        super().__init__(message)
        self.remaining = remaining


class CampaignExpired(ConflictError):
    """The campaign deadline has passed."""


class ContributorLimitReached(ConflictError):
    """The campaign already has its maximum number of contributors."""


class CampaignNotActive(ConflictError):
    """The campaign is in a terminal state."""


class CommitInProgress(ConflictError):
    """Another worker holds a fresh pending record for the same request key."""


class TransientError(DomainException):
    """A temporary upstream failure (timeout, rate limit)."""


class StorageContention(TransientError):
    """Optimistic writes kept losing to concurrent writers."""


class FatalError(DomainException):
    """Retries exhausted; needs manual intervention."""
