# projections/views.py
"""
API views for ledger reports.

Reports are computed on request from journal lines through
projections.ledger. They never write.

Query params shared by all reports:
- include_drafts: "true" to add DRAFT entries (VOID entries never count)
"""

from decimal import Decimal

from django.utils.dateparse import parse_date
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from accounts.authz import resolve_actor, require
from accounting.exceptions import NotFoundError, ValidationError
from accounting.models import Account
from projections.ledger import cash_flow, general_ledger, trial_balance


def _render(value):
    """Decimals and dates as strings, recursively."""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, dict):
        return {key: _render(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_render(item) for item in value]
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value


def _date_param(request, name, errors):
    raw = request.query_params.get(name)
    if not raw:
        return None
    try:
        value = parse_date(raw)
    except ValueError:
        value = None
    if value is None:
        errors.setdefault(name, []).append("Enter a valid date (YYYY-MM-DD).")
    return value


def _include_drafts(request) -> bool:
    return request.query_params.get("include_drafts", "").lower() in ("1", "true", "yes")


def _date_range(request):
    errors = {}
    start = _date_param(request, "start", errors)
    end = _date_param(request, "end", errors)
    if start and end and start > end:
        errors.setdefault("start", []).append("Start date must be on or before end date.")
    if errors:
        raise ValidationError(errors)
    return start, end


class GeneralLedgerView(APIView):
    """
    GET /api/reports/general-ledger/

    Query params:
    - start, end: Inclusive date range (YYYY-MM-DD)
    - account: Restrict to one account code
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, "reports.view")

        start, end = _date_range(request)

        account_id = None
        code = request.query_params.get("account")
        if code:
            account = Account.objects.filter(
                tenant=actor.tenant, company=actor.company, code=code,
            ).first()
            if account is None:
                raise NotFoundError("Account not found.", details={"code": code})
            account_id = account.id

        report = general_ledger(
            actor.scope,
            start=start,
            end=end,
            account_id=account_id,
            include_drafts=_include_drafts(request),
        )
        return Response(_render(report))


class TrialBalanceView(APIView):
    """
    GET /api/reports/trial-balance/

    Query params:
    - as_of: Include entries dated on or before this date (YYYY-MM-DD)
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, "reports.view")

        errors = {}
        as_of = _date_param(request, "as_of", errors)
        if errors:
            raise ValidationError(errors)

        report = trial_balance(actor.scope, as_of=as_of, include_drafts=_include_drafts(request))
        return Response(_render(report))


class CashFlowView(APIView):
    """
    GET /api/reports/cash-flow/

    Query params:
    - start, end: Inclusive date range (YYYY-MM-DD)
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, "reports.view")

        start, end = _date_range(request)
        report = cash_flow(actor.scope, start=start, end=end, include_drafts=_include_drafts(request))
        return Response(_render(report))
