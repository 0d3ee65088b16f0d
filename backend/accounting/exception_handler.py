# accounting/exception_handler.py
"""
DRF exception handler for the ledger error taxonomy.

Ledger errors render as:
    {"error": {"code": "...", "message": "...", "details": {...}}}
with the status code carried by the error class. Request-shape errors from
DRF serializers use the same envelope with code "validation_error".
Everything else falls back to DRF's default handler.
"""

import logging

from rest_framework.exceptions import ValidationError as DRFValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler

from accounting.exceptions import LedgerError, StoreUnavailableError
from ops.metrics import record_ledger_error

logger = logging.getLogger(__name__)


def ledger_exception_handler(exc, context):
    if isinstance(exc, (LedgerError, StoreUnavailableError)):
        view = context.get("view")
        log = logger.warning if exc.status_code >= 500 else logger.info
        log(
            f"{exc.__class__.__name__}: {exc.message}",
            extra={"code": exc.code, "view": view.__class__.__name__ if view else None},
        )
        record_ledger_error(exc.code)
        response = Response({"error": exc.as_dict()}, status=exc.status_code)
        if isinstance(exc, StoreUnavailableError):
            response["Retry-After"] = "5"
        return response

    response = exception_handler(exc, context)

    if response is not None and isinstance(exc, DRFValidationError):
        details = response.data if isinstance(response.data, dict) else {"non_field_errors": response.data}
        response.data = {
            "error": {
                "code": "validation_error",
                "message": "Request data is invalid.",
                "details": details,
            }
        }

    return response
