"""
gatehouse.services.errors — Service-layer exceptions
=====================================================

Services raise these; routes translate them to HTTP responses via
:func:`gatehouse.api.deps.http_error`.
"""

from __future__ import annotations


class GatehouseError(Exception):
    """Base class for expected, user-facing service failures."""

    status_code = 400


class ValidationError(GatehouseError):
    """A request field is missing or invalid."""


class ConflictError(GatehouseError):
    """The request clashes with existing state (e.g. a pending application)."""


class InvalidTransitionError(GatehouseError):
    """The application cannot move from its current status via this event."""


class NotFoundError(GatehouseError):
    """An application or question id does not exist."""

    status_code = 404


class NotOwnerError(GatehouseError):
    """The caller does not own the application they are trying to change."""

    status_code = 403


class NotMemberError(GatehouseError):
    """The applicant has not joined the guild yet."""

    status_code = 403
