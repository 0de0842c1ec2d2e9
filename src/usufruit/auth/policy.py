"""
Authorization policy engine for usufruit.

Every request is evaluated as ``authorize(actor, library_id, action, resource)``
where ``actor`` is the authenticated librarian (or None), ``library_id`` is the
library named by the request path and ``resource`` describes the record being
acted on. The result is a ``Decision``:

- ``ALLOW`` - go ahead
- ``ALLOW_WITH_REDACTION`` - go ahead, but strip the listed fields
- ``DENY`` - stop; ``kind`` says whether the caller is unauthenticated or
  merely lacks the privilege

Rules are checked in a fixed order (authenticated, member of the library,
privilege) and the first failing check wins. Existence and cross-library checks
on the target record happen before the policy is consulted, so a missing record
is reported as not found rather than forbidden.
"""

import enum
import logging

from pydantic import BaseModel, ConfigDict

from ..errors import ErrorKind, ForbiddenError, UnauthorizedError
from ..models.librarian import Librarian

logger = logging.getLogger(__name__)

SECRET_FIELDS = frozenset({"secret_key"})


class Action(str, enum.Enum):
    """Operations the policy knows how to judge."""

    READ_LIBRARY = "read_library"
    READ_BOOK = "read_book"
    READ_LOANS = "read_loans"
    READ_LIBRARIANS = "read_librarians"
    MODIFY_LIBRARY = "modify_library"
    CREATE_BOOK = "create_book"
    UPDATE_BOOK = "update_book"
    DELETE_BOOK = "delete_book"
    CREATE_LIBRARIAN = "create_librarian"
    CREATE_SUPER_LIBRARIAN = "create_super_librarian"
    CHANGE_SUPER_STATUS = "change_super_status"
    UPDATE_LIBRARIAN_DETAILS = "update_librarian_details"
    DELETE_LIBRARIAN = "delete_librarian"
    BORROW = "borrow"
    RETURN = "return"


class Effect(str, enum.Enum):
    ALLOW = "allow"
    ALLOW_WITH_REDACTION = "allow_with_redaction"
    DENY = "deny"


class ResourceRef(BaseModel):
    """
    The record an action targets.

    ``librarian_id`` is the book's assigned librarian for book actions, the
    proposed owner for book creation, and the target librarian for librarian
    actions. ``is_super`` is the requested status for super-status changes.
    """

    librarian_id: str | None = None
    is_super: bool | None = None

    model_config = ConfigDict(frozen=True)


class Decision(BaseModel):
    """Outcome of a policy evaluation."""

    effect: Effect
    reason: str = ""
    kind: ErrorKind | None = None
    redact_fields: frozenset[str] = frozenset()

    model_config = ConfigDict(frozen=True)

    @property
    def allowed(self) -> bool:
        return self.effect != Effect.DENY

    def enforce(self) -> "Decision":
        """
        Raise the matching error for a denial, otherwise return self.

        Raises:
            UnauthorizedError: Denied because no actor was given
            ForbiddenError: Denied for lack of privilege
        """
        if self.effect != Effect.DENY:
            return self
        if self.kind == ErrorKind.UNAUTHORIZED:
            raise UnauthorizedError(self.reason)
        raise ForbiddenError(self.reason)

    def apply_redaction(
        self, librarians: list[Librarian], owner_id: str | None
    ) -> list[Librarian]:
        """Blank ``redact_fields`` on every record except the owner's own."""
        if not self.redact_fields:
            return list(librarians)
        blanked = dict.fromkeys(self.redact_fields)
        return [
            lib if lib.id == owner_id else lib.model_copy(update=blanked) for lib in librarians
        ]


ALLOW = Decision(effect=Effect.ALLOW)


def _deny(reason: str, kind: ErrorKind = ErrorKind.FORBIDDEN) -> Decision:
    return Decision(effect=Effect.DENY, reason=reason, kind=kind)


def is_super_of(actor: Librarian | None, library_id: str) -> bool:
    return actor is not None and actor.is_super and actor.library_id == library_id


class AuthorizationPolicy:
    """Stateless evaluator of the library permission table."""

    def authorize(
        self,
        actor: Librarian | None,
        library_id: str,
        action: Action,
        resource: ResourceRef | None = None,
    ) -> Decision:
        resource = resource or ResourceRef()
        decision = self._evaluate(actor, library_id, action, resource)
        if not decision.allowed:
            logger.debug(
                "Denied %s on %s for %s: %s",
                action.value,
                library_id,
                actor.id if actor else "anonymous",
                decision.reason,
            )
        return decision

    def _evaluate(
        self,
        actor: Librarian | None,
        library_id: str,
        action: Action,
        resource: ResourceRef,
    ) -> Decision:
        # Reads and self-registration are open to everyone
        if action in (Action.READ_LIBRARY, Action.READ_BOOK, Action.READ_LOANS):
            return ALLOW
        if action == Action.READ_LIBRARIANS:
            if is_super_of(actor, library_id):
                return ALLOW
            return Decision(effect=Effect.ALLOW_WITH_REDACTION, redact_fields=SECRET_FIELDS)
        if action == Action.CREATE_LIBRARIAN:
            return ALLOW

        if actor is None:
            return _deny("Authentication required", ErrorKind.UNAUTHORIZED)
        if actor.library_id != library_id:
            return _deny("Librarian is not a member of this library")

        is_self = resource.librarian_id is not None and resource.librarian_id == actor.id

        if action in (Action.BORROW, Action.RETURN):
            return ALLOW

        if action == Action.CREATE_BOOK:
            # No explicit owner means the book is assigned to the actor
            if actor.is_super or resource.librarian_id is None or is_self:
                return ALLOW
            return _deny("Only super librarians can assign books to other librarians")

        if action in (Action.UPDATE_BOOK, Action.DELETE_BOOK):
            if actor.is_super or is_self:
                return ALLOW
            return _deny("Only the assigned librarian or a super librarian can modify a book")

        if action == Action.UPDATE_LIBRARIAN_DETAILS:
            if actor.is_super or is_self:
                return ALLOW
            return _deny("Librarians can only edit their own details")

        if action in (Action.CREATE_SUPER_LIBRARIAN, Action.MODIFY_LIBRARY):
            if actor.is_super:
                return ALLOW
            return _deny("Super librarian privileges required")

        if action == Action.CHANGE_SUPER_STATUS:
            if not actor.is_super:
                return _deny("Super librarian privileges required")
            if is_self and resource.is_super is False:
                return _deny("Super librarians cannot remove their own super status")
            return ALLOW

        if action == Action.DELETE_LIBRARIAN:
            if not actor.is_super:
                return _deny("Super librarian privileges required")
            if is_self:
                return _deny("Librarians cannot delete themselves")
            return ALLOW

        return _deny(f"Unknown action {action!r}")


_policy = AuthorizationPolicy()


def redact_librarians(
    librarians: list[Librarian], actor: Librarian | None, library_id: str
) -> list[Librarian]:
    """
    Strip secret keys the actor may not see.

    A super librarian of ``library_id`` sees every key. Anyone else sees only
    their own; unauthenticated callers see none.
    """
    decision = _policy.authorize(actor, library_id, Action.READ_LIBRARIANS)
    return decision.apply_redaction(librarians, actor.id if actor is not None else None)
