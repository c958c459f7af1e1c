"""Error taxonomy shared by the governance services.

Every error carries a stable ``code`` that clients use to render precise
messages. Routers translate the classes to HTTP status codes; services never
catch and mask them.
"""
from __future__ import annotations


class GovernanceError(RuntimeError):
    """Base exception for governance service errors."""

    code = "governance_error"


class NotFoundError(GovernanceError):
    """Raised when a proposal is unknown or not visible to the caller."""

    code = "not_found"


class UnauthorizedError(GovernanceError):
    """Raised when an operation requires an identity and none was supplied."""

    code = "unauthorized"


class ForbiddenError(GovernanceError):
    """Raised when an authenticated caller is not permitted to act."""

    code = "forbidden"


class NotEligibleError(ForbiddenError):
    """Raised when a user may not vote on a proposal."""

    code = "not_eligible"


class InvalidStateError(GovernanceError):
    """Raised when the proposal lifecycle does not allow the operation."""

    code = "invalid_state"


class ProposalNotOpenError(InvalidStateError):
    code = "proposal_not_open"


class NotClosedYetError(InvalidStateError):
    code = "not_closed_yet"


class AlreadyTalliedError(InvalidStateError):
    code = "already_tallied"


class GovernanceValidationError(GovernanceError):
    """Raised for malformed input such as an empty eligible-role set."""

    code = "validation_error"


class InvalidChoiceError(GovernanceValidationError):
    code = "invalid_choice"


__all__ = [
    "AlreadyTalliedError",
    "ForbiddenError",
    "GovernanceError",
    "GovernanceValidationError",
    "InvalidChoiceError",
    "InvalidStateError",
    "NotClosedYetError",
    "NotEligibleError",
    "NotFoundError",
    "ProposalNotOpenError",
    "UnauthorizedError",
]
