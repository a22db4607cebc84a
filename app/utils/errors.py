"""Custom exception hierarchy for the board election API."""

from __future__ import annotations


class AppError(Exception):
    """Base application error with a stable machine-readable code."""

    def __init__(self, message: str, code: str, status_code: int = 400) -> None:
        self.message = message
        self.code = code
        self.status_code = status_code
        super().__init__(message)

    def to_dict(self) -> dict[str, str]:
        """Serialize the error in the API standard shape."""
        return {"error": self.message, "code": self.code}


class NotFoundError(AppError):
    """Raised when a requested resource does not exist."""

    def __init__(self, resource: str) -> None:
        super().__init__(message=f"{resource} not found", code="NOT_FOUND", status_code=404)


class ForbiddenError(AppError):
    """Raised when the user lacks permission for the action."""

    def __init__(self, reason: str = "You don't have permission") -> None:
        super().__init__(message=reason, code="FORBIDDEN", status_code=403)


class ConflictError(AppError):
    """Raised on duplicate/conflicting operations."""

    def __init__(self, reason: str, code: str = "CONFLICT") -> None:
        super().__init__(message=reason, code=code, status_code=409)


class UnauthorizedError(AppError):
    """Raised when the caller is not authenticated."""

    def __init__(self, reason: str = "Unauthorized") -> None:
        super().__init__(message=reason, code="UNAUTHORIZED", status_code=401)


class InvalidInputError(AppError):
    """Raised for request payload or parameter validation issues."""

    def __init__(self, reason: str) -> None:
        super().__init__(message=reason, code="INVALID_INPUT", status_code=422)


class ValidationError(AppError):
    """Raised when election input is malformed (dates, candidate slate)."""

    def __init__(self, reason: str) -> None:
        super().__init__(message=reason, code="VALIDATION_ERROR", status_code=422)


class InvalidBallotError(AppError):
    """Raised when a ballot has the wrong shape or selects an invalid candidate."""

    def __init__(self, reason: str) -> None:
        super().__init__(message=reason, code="INVALID_BALLOT", status_code=422)


class DuplicateVoteError(ConflictError):
    """Raised when a member tries to vote twice in one election."""

    def __init__(self) -> None:
        super().__init__("You have already voted in this election", code="ALREADY_VOTED")


class NotActiveError(ConflictError):
    """Raised when an operation happens outside its lifecycle window."""

    def __init__(self, reason: str = "Election is not active") -> None:
        super().__init__(reason, code="ELECTION_NOT_ACTIVE")


class LockedElectionError(ConflictError):
    """Raised when changing fields that froze once voting started."""

    def __init__(
        self,
        reason: str = "Start date and candidates cannot change after votes were cast",
    ) -> None:
        super().__init__(reason, code="ELECTION_LOCKED")


class FinalizedElectionError(ConflictError):
    """Raised when mutating an election whose results are frozen."""

    def __init__(self, reason: str = "Finalized elections cannot be changed") -> None:
        super().__init__(reason, code="ELECTION_FINALIZED")


class AlreadyFinalizedError(ConflictError):
    """Raised when finalizing an election a second time."""

    def __init__(self) -> None:
        super().__init__("Election has already been finalized", code="ALREADY_FINALIZED")
