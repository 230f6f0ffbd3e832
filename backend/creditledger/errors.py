# Overview: Error kinds raised by ledger operations, each mapped to an HTTP status.

from __future__ import annotations


class LedgerError(Exception):
    """Base class for ledger operation failures."""
    status_code = 400


class ValidationError(LedgerError, ValueError):
    """400-level input problem (missing field, non-positive amount, unknown branch)."""
    status_code = 400


class NotFound(LedgerError, LookupError):
    """The referenced entity does not exist (or was deleted)."""
    status_code = 404


class ConflictError(LedgerError):
    """409-level business rule conflict (e.g., deleting a referenced record under REJECT policy)."""
    status_code = 409


class InsufficientStock(ConflictError):
    """A stock transfer asked for more than the source branch holds."""


class InvalidTransition(ConflictError):
    """A status change that the state machine does not allow."""


class PersistenceUnavailable(LedgerError):
    """
    The persistence bridge could not load or save.

    Only raised inside the sync layer; it is converted into the
    OFFLINE_PENDING sync status and never reaches API callers.
    """
    status_code = 503
