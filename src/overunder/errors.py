"""Business-rule errors raised by the wagering core.

Every error is detected before any mutation is attempted. The global error
handler renders them as JSON with the error's status code and machine-readable
``code``, so callers can tell an invalid request from a store failure.
"""

from __future__ import annotations

from datetime import datetime


class WagerError(Exception):
    """Base class for all business-rule errors."""

    status_code: int = 400
    code: str = "wager_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, object]:
        return {
            "success": False,
            "detail": self.message,
            "message": self.message,
            "code": self.code,
        }


class ValidationError(WagerError):
    """Malformed input: lengths, non-numeric values, non-future deadlines."""

    status_code = 422
    code = "validation_error"


class AuthorizationError(WagerError):
    """Actor lacks the required role (group leader, proposition creator, member)."""

    status_code = 403
    code = "forbidden"


class InvalidStateError(WagerError):
    """Operation attempted against an entity in the wrong lifecycle state."""

    status_code = 409
    code = "invalid_state"


class BettingClosedError(InvalidStateError):
    """Stake attempted after the betting window closed or the proposition resolved."""

    code = "betting_closed"


class InsufficientFundsError(WagerError):
    """Stake exceeds the user's balance."""

    status_code = 400
    code = "insufficient_funds"


class DuplicateStakeError(WagerError):
    """Second stake by the same user on the same proposition."""

    status_code = 409
    code = "duplicate_stake"


class AlreadyClaimedError(WagerError):
    """Daily grant requested before the next UTC midnight."""

    status_code = 409
    code = "already_claimed"

    def __init__(self, message: str, next_claim_at: datetime, retry_after_seconds: int) -> None:
        super().__init__(message)
        self.next_claim_at = next_claim_at
        self.retry_after_seconds = retry_after_seconds

    def to_dict(self) -> dict[str, object]:
        data = super().to_dict()
        data["next_claim_at"] = self.next_claim_at.isoformat()
        data["retry_after_seconds"] = self.retry_after_seconds
        return data


class NotFoundError(WagerError):
    """Referenced proposition, group or user does not exist."""

    status_code = 404
    code = "not_found"
