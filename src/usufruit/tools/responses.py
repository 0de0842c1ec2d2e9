"""
Shared response helpers for usufruit tools.

Every tool returns a dict with human-readable ``content`` and, on success,
structured ``data``. Failures set ``isError`` and carry an ``error`` object
with the error kind, an HTTP-like status and the message, so clients can
branch without parsing text.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from pydantic import BaseModel, Field, ValidationError

from ..auth.authenticator import parse_bearer_credential
from ..errors import InvalidInputError, UsufruitError
from ..models.librarian import Librarian

logger = logging.getLogger(__name__)

InputT = TypeVar("InputT", bound=BaseModel)


class AuthenticatedInput(BaseModel):
    """Base input for tools that may act on behalf of a librarian."""

    secret_key: str | None = Field(
        default=None,
        description="The acting librarian's secret key",
        repr=False,
    )
    authorization: str | None = Field(
        default=None,
        description="Alternative to secret_key: an 'Authorization: Bearer <key>' value",
        repr=False,
    )

    def credential(self) -> str | None:
        return self.secret_key or parse_bearer_credential(self.authorization)


def parse_arguments(model: type[InputT], arguments: dict[str, Any] | None) -> InputT:
    """
    Validate raw tool arguments.

    Raises:
        InvalidInputError: Listing the offending fields, without their values
    """
    try:
        return model.model_validate(arguments or {})
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc']) or 'arguments'}: {err['msg']}"
            for err in e.errors(include_input=False, include_url=False)
        )
        raise InvalidInputError(f"Invalid arguments: {problems}") from e


def success(message: str, **data: Any) -> dict[str, Any]:
    return {
        "content": [{"type": "text", "text": message}],
        "data": data,
    }


def error_response(error: UsufruitError) -> dict[str, Any]:
    return {
        "isError": True,
        "content": [{"type": "text", "text": error.message}],
        "error": error.to_dict(),
    }


def internal_error() -> dict[str, Any]:
    return {
        "isError": True,
        "content": [{"type": "text", "text": "An unexpected error occurred"}],
        "error": {"kind": "internal", "status": 500, "message": "An unexpected error occurred"},
    }


async def guarded(
    tool_name: str, operation: Callable[[], Awaitable[dict[str, Any]]]
) -> dict[str, Any]:
    """
    Run a tool body, mapping failures to error responses.

    Expected failures (``UsufruitError``) keep their kind and status. Anything
    else is logged with its traceback and reported as an internal error
    without details.
    """
    try:
        return await operation()
    except UsufruitError as e:
        logger.info("%s failed (%s): %s", tool_name, e.kind.value, e.message)
        return error_response(e)
    except Exception:
        logger.exception("Unexpected error in %s tool", tool_name)
        return internal_error()


def dump_librarian(librarian: Librarian) -> dict[str, Any]:
    """Serialize a librarian, omitting the secret key when redacted."""
    data = librarian.model_dump(mode="json")
    if data.get("secret_key") is None:
        data.pop("secret_key", None)
    return data
