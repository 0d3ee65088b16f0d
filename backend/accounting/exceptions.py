# accounting/exceptions.py
"""
Ledger error taxonomy.

Every business failure raised by the posting engine, the ledger store and
the account registry is a LedgerError subclass. Each carries a stable
machine-readable ``code``, a human message, structured ``details`` and the
HTTP status the API layer maps it to.

StoreUnavailableError sits outside the taxonomy: it signals an
infrastructure fault (database unreachable) and is the only retryable error.
"""

from decimal import Decimal


class LedgerError(Exception):
    code = "ledger_error"
    status_code = 400
    default_message = "Ledger operation failed."

    def __init__(self, message=None, details=None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def as_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(LedgerError):
    """Input is malformed. ``details`` maps each field to its messages."""

    code = "validation_error"
    status_code = 400
    default_message = "Journal data is invalid."

    def __init__(self, errors=None, message=None):
        self.errors = {field: list(msgs) for field, msgs in (errors or {}).items()}
        super().__init__(message, details=self.errors)


class UnbalancedEntryError(LedgerError):
    code = "unbalanced_entry"
    status_code = 422
    default_message = "Entry is not balanced."

    def __init__(self, total_debit: Decimal, total_credit: Decimal, message=None):
        self.total_debit = total_debit
        self.total_credit = total_credit
        super().__init__(
            message or f"Entry is not balanced. Debit={total_debit} Credit={total_credit}",
            details={"total_debit": str(total_debit), "total_credit": str(total_credit)},
        )


class InvalidStateError(LedgerError):
    code = "invalid_state"
    status_code = 409
    default_message = "Operation is not allowed in the entry's current status."

    def __init__(self, message=None, status=None, attempted=None):
        self.status = status
        self.attempted = attempted
        details = {}
        if status is not None:
            details["status"] = status
        if attempted is not None:
            details["attempted"] = attempted
        super().__init__(message, details=details)


class NotFoundError(LedgerError):
    code = "not_found"
    status_code = 404
    default_message = "Not found."


class ScopeError(LedgerError):
    """A reference crossed a tenant/company boundary, or scope was missing."""

    code = "scope_violation"
    status_code = 403
    default_message = "Operation crosses a tenant or company boundary."


class StoreUnavailableError(Exception):
    code = "store_unavailable"
    status_code = 503

    def __init__(self, message="Ledger store is unavailable.", details=None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def as_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }
