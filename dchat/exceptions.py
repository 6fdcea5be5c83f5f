"""Exception hierarchy for dchat.

Contract-level failures carry a stable ``reason`` string so that callers
(receipts, the CLI, a polling UI) can react programmatically without parsing
messages.
"""
from __future__ import annotations


class DChatError(Exception):
    """Base class for all dchat errors."""
    pass


class LedgerError(DChatError):
    """An operation was rejected by the ledger contract."""

    reason = "ledger_error"


class InsufficientFunds(LedgerError):
    """A debit exceeded the balance of the debited account."""

    reason = "insufficient_funds"


class InsufficientReserve(InsufficientFunds):
    """The reserve cannot cover a claim payout."""

    reason = "insufficient_reserve"


class Unauthorized(LedgerError):
    """A non-owner invoked an owner-only mutator."""

    reason = "unauthorized"


class NotYetEligible(LedgerError):
    """A claim was attempted before the cooldown elapsed.

    ``claim()`` reports this as a ``False`` result; the class exists so the
    outcome has a name in receipts.
    """

    reason = "not_yet_eligible"


class UnknownOperation(LedgerError):
    reason = "unknown_operation"


class ValidationError(DChatError):
    """Malformed operation arguments."""

    reason = "invalid_argument"

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")


class ChainError(DChatError):
    """A block or operation envelope was rejected."""
    pass


class StorageError(DChatError):
    """Content store or persisted state failure."""
    pass


class NodeError(DChatError):
    pass
