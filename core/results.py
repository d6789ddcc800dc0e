"""
core/results.py -- Typed result values for recoverable failures.

Operations that can fail for a reason the caller is expected to handle
(bad input, expired link, infected upload, undeliverable email) return either
Ok(value) or an instance of a Failure subclass instead of raising. Callers
branch with isinstance() or on the .ok flag:

    result = links.consume(raw, ActionKind.PASSWORD_RESET)
    if not result.ok:
        return failure_response(result)
    binding = result.value

Exceptions remain reserved for defects (programming errors, missing templates
at startup) that no request handler should try to recover from.

Every Failure carries a stable machine-readable `code` and a user-facing
`message`. The three link token failures deliberately share one message so an
end user cannot tell an expired link from an unknown one.

Layer rule: core/ is the kernel. No project imports.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Generic, TypeVar, Union

T = TypeVar("T")

LINK_INVALID_MESSAGE = "This link is invalid or has expired."


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T = None  # type: ignore[assignment]
    ok: ClassVar[bool] = True


@dataclass(frozen=True)
class Failure:
    code: ClassVar[str] = "failure"
    ok: ClassVar[bool] = False

    @property
    def message(self) -> str:
        return "The operation failed."


# ---------------------------------------------------------------------------
# Input and data failures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class InvalidCredential(Failure):
    """A name, email or password failed format validation.

    value is the offending input echoed back for display -- empty when the
    field was missing, and always empty for passwords.
    """

    field: str
    value: str = ""
    code: ClassVar[str] = "invalid_credential"

    @property
    def message(self) -> str:
        if not self.value:
            return f"Invalid or missing {self.field}."
        return f"Invalid {self.field}: {self.value}"


@dataclass(frozen=True)
class InvalidOwnership(Failure):
    """A resource would end up with zero or two owners."""

    owner_user_id: Any = None
    owner_team_id: Any = None
    code: ClassVar[str] = "invalid_ownership"

    @property
    def message(self) -> str:
        return "A model must be owned by exactly one user or one team."


@dataclass(frozen=True)
class NotFound(Failure):
    entity: str
    identifier: str = ""
    code: ClassVar[str] = "not_found"

    @property
    def message(self) -> str:
        return f"{self.entity} not found."


@dataclass(frozen=True)
class AlreadyExists(Failure):
    entity: str  # "User" | "Team"
    field: str  # "name" | "email"
    code: ClassVar[str] = "already_exists"

    @property
    def message(self) -> str:
        return f"A {self.entity.lower()} with this {self.field} already exists."


@dataclass(frozen=True)
class Forbidden(Failure):
    action: str
    code: ClassVar[str] = "forbidden"

    @property
    def message(self) -> str:
        return f"You are not allowed to {self.action}."


# ---------------------------------------------------------------------------
# Link token failures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TokenNotFound(Failure):
    code: ClassVar[str] = "token_not_found"

    @property
    def message(self) -> str:
        return LINK_INVALID_MESSAGE


@dataclass(frozen=True)
class TokenExpired(Failure):
    code: ClassVar[str] = "token_expired"

    @property
    def message(self) -> str:
        return LINK_INVALID_MESSAGE


@dataclass(frozen=True)
class TokenKindMismatch(Failure):
    code: ClassVar[str] = "token_kind_mismatch"

    @property
    def message(self) -> str:
        return LINK_INVALID_MESSAGE


# ---------------------------------------------------------------------------
# Upload and delivery failures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FileInfected(Failure):
    token: str
    code: ClassVar[str] = "file_infected"

    @property
    def message(self) -> str:
        return "The uploaded file was rejected by content inspection. Please upload it again."


@dataclass(frozen=True)
class EmptyRecipients(Failure):
    code: ClassVar[str] = "empty_recipients"

    @property
    def message(self) -> str:
        return "No recipients were given for the email."


@dataclass(frozen=True)
class DeliveryFailed(Failure):
    reason: str = ""
    code: ClassVar[str] = "delivery_failed"

    @property
    def message(self) -> str:
        return "The email could not be delivered. Please try again later."


Result = Union[Ok[T], Failure]

TOKEN_FAILURES = (TokenNotFound, TokenExpired, TokenKindMismatch)
