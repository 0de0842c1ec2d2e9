"""
Authentication and authorization for usufruit.

- ``authenticator``: secret-key lookup (import it directly; it depends on the
  database package)
- ``policy``: the permission table and secret-key redaction
"""

from .policy import (
    Action,
    AuthorizationPolicy,
    Decision,
    Effect,
    ResourceRef,
    redact_librarians,
)

__all__ = [
    "Action",
    "AuthorizationPolicy",
    "Decision",
    "Effect",
    "ResourceRef",
    "redact_librarians",
]
