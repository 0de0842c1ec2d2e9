"""
Typed error taxonomy for usufruit.

Every expected failure of a core operation is raised as a subclass of
``UsufruitError``. Each class carries an ``ErrorKind`` and a stable HTTP-like
``status`` so the transport layer can map failures without parsing messages.

Messages are human readable and must never contain secret keys.
"""

import enum


class ErrorKind(str, enum.Enum):
    """Distinguishable error kinds surfaced to callers."""

    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    CONFLICT = "conflict"
    VALIDATION = "validation"
    DEPENDENCY = "dependency"


class UsufruitError(Exception):
    """Base exception for expected, recoverable failures."""

    kind: ErrorKind = ErrorKind.DEPENDENCY
    status: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str | int]:
        return {"kind": self.kind.value, "status": self.status, "message": self.message}


class NotFoundError(UsufruitError):
    """Referenced record does not exist, or is not under the requested parent."""

    kind = ErrorKind.NOT_FOUND
    status = 404


class UnauthorizedError(UsufruitError):
    """No valid credential was supplied where one is required."""

    kind = ErrorKind.UNAUTHORIZED
    status = 401


class ForbiddenError(UsufruitError):
    """Credential is valid but lacks the privilege for the action."""

    kind = ErrorKind.FORBIDDEN
    status = 403


class ConflictError(UsufruitError):
    """The operation would violate a data invariant."""

    kind = ErrorKind.CONFLICT
    status = 409


class InvalidInputError(UsufruitError):
    """A required field is missing or malformed."""

    kind = ErrorKind.VALIDATION
    status = 400


class DependencyError(UsufruitError):
    """The store or the embedding backend is unavailable."""

    kind = ErrorKind.DEPENDENCY
    status = 503
