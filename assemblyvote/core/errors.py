"""Typed failures and the discriminated result returned to callers."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


class CoreError(RuntimeError):
    """Base class for every failure the core reports to its callers."""

    code = "CORE_ERROR"
    status_code = 400

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class ValidationError(CoreError):
    """Malformed or missing input, e.g. self-delegation."""

    code = "VALIDATION_ERROR"
    status_code = 422


class InvalidCode(ValidationError):
    code = "INVALID_CODE"


class NoContactChannel(ValidationError):
    code = "NO_CONTACT_CHANNEL"


class Forbidden(CoreError):
    """Role or ownership check failed."""

    code = "FORBIDDEN"
    status_code = 403


class NoVotingRights(Forbidden):
    code = "NO_VOTING_RIGHTS"


class TooManyAttempts(Forbidden):
    code = "TOO_MANY_ATTEMPTS"


class NotFound(CoreError):
    code = "NOT_FOUND"
    status_code = 404


class Conflict(CoreError):
    """State-machine violation."""

    code = "CONFLICT"
    status_code = 409


class AlreadyProcessed(Conflict):
    code = "ALREADY_PROCESSED"


class AlreadyVoted(Conflict):
    code = "ALREADY_VOTED"


class VoteNotOpen(Conflict):
    code = "VOTE_NOT_OPEN"


class TransactionConflict(Conflict):
    """A concurrent transaction won; the operation may be retried."""

    code = "TRANSACTION_CONFLICT"


class Expired(CoreError):
    code = "EXPIRED"
    status_code = 410


class ExternalDependencyFailed(CoreError):
    """A notification or storage collaborator failed."""

    code = "EXTERNAL_DEPENDENCY_FAILED"
    status_code = 502


@dataclass(slots=True)
class OperationResult:
    """Discriminated outcome handed to UI/CLI callers."""

    success: bool
    code: str
    message: str
    data: dict[str, Any] | None = None
    warnings: list[str] = field(default_factory=list)

    @classmethod
    def ok(
        cls,
        message: str,
        *,
        data: dict[str, Any] | None = None,
        warnings: list[str] | None = None,
    ) -> "OperationResult":
        return cls(success=True, code="OK", message=message, data=data, warnings=list(warnings or []))

    @classmethod
    def from_error(cls, error: CoreError) -> "OperationResult":
        return cls(success=False, code=error.code, message=error.message)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "success": self.success,
            "code": self.code,
            "message": self.message,
        }
        if self.data is not None:
            payload["data"] = self.data
        if self.warnings:
            payload["warnings"] = self.warnings
        return payload


__all__ = [
    "AlreadyProcessed",
    "AlreadyVoted",
    "Conflict",
    "CoreError",
    "Expired",
    "ExternalDependencyFailed",
    "Forbidden",
    "InvalidCode",
    "NoContactChannel",
    "NoVotingRights",
    "NotFound",
    "OperationResult",
    "TooManyAttempts",
    "TransactionConflict",
    "ValidationError",
    "VoteNotOpen",
]
