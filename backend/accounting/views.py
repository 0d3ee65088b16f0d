# accounting/views.py
"""
Thin views that delegate to the commands layer.

Views handle: HTTP parsing, authentication, response formatting.
Commands handle: business logic, validation, persistence.

Ledger errors raised by commands are rendered by
accounting.exception_handler.ledger_exception_handler.
"""

from django.conf import settings
from django.db.models import Exists, OuterRef
from django.utils.dateparse import parse_date
from rest_framework import status
from rest_framework.pagination import PageNumberPagination
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from accounts.authz import resolve_actor, require
from . import store
from .commands import (
    create_account,
    create_draft,
    delete_account,
    delete_draft,
    post_entry,
    update_account,
    update_draft,
    void_entry,
)
from .exceptions import NotFoundError, ValidationError
from .models import Account, JournalEntry, JournalLine
from .serializers import (
    AccountCreateSerializer,
    AccountSerializer,
    AccountUpdateSerializer,
    JournalEntryAuditSerializer,
    JournalEntryCreateSerializer,
    JournalEntrySerializer,
    JournalEntryUpdateSerializer,
    JournalEntryVoidSerializer,
)


class JournalEntryPagination(PageNumberPagination):
    page_size = 25
    page_size_query_param = "page_size"
    max_page_size = getattr(settings, "LEDGER_MAX_PAGE_SIZE", 100)


def _query_date(request, name):
    raw = request.query_params.get(name)
    if not raw:
        return None
    try:
        value = parse_date(raw)
    except ValueError:
        value = None
    if value is None:
        raise ValidationError({name: ["Enter a valid date (YYYY-MM-DD)."]})
    return value


# =============================================================================
# Account Views
# =============================================================================

def _accounts_for(actor):
    return Account.objects.filter(
        tenant=actor.tenant,
        company=actor.company,
    ).annotate(
        _has_transactions=Exists(
            JournalLine.objects.filter(account=OuterRef("pk"))
        ),
    ).select_related("parent")


class AccountListCreateView(APIView):
    """
    GET /api/accounting/accounts/ -> list accounts for active company
    POST /api/accounting/accounts/ -> create account in active company
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, "accounts.view")

        accounts = _accounts_for(actor).order_by("code")
        account_type = request.query_params.get("account_type")
        if account_type:
            accounts = accounts.filter(account_type=account_type)
        account_status = request.query_params.get("status")
        if account_status:
            accounts = accounts.filter(status=account_status)

        serializer = AccountSerializer(accounts, many=True)
        return Response(serializer.data)

    def post(self, request):
        actor = resolve_actor(request)
        # Permission check happens in command

        input_serializer = AccountCreateSerializer(data=request.data)
        input_serializer.is_valid(raise_exception=True)

        account = create_account(actor, **input_serializer.validated_data)

        output_serializer = AccountSerializer(account)
        return Response(output_serializer.data, status=status.HTTP_201_CREATED)


class AccountDetailView(APIView):
    """
    GET /api/accounting/accounts/<code>/ -> retrieve account
    PATCH /api/accounting/accounts/<code>/ -> update account
    DELETE /api/accounting/accounts/<code>/ -> delete account
    """
    permission_classes = [IsAuthenticated]

    def get_object(self, actor, code):
        account = _accounts_for(actor).filter(code=code).first()
        if not account:
            raise NotFoundError("Account not found.", details={"code": code})
        return account

    def get(self, request, code):
        actor = resolve_actor(request)
        require(actor, "accounts.view")

        account = self.get_object(actor, code)
        serializer = AccountSerializer(account)
        return Response(serializer.data)

    def patch(self, request, code):
        actor = resolve_actor(request)
        # Permission check happens in command

        account = self.get_object(actor, code)

        input_serializer = AccountUpdateSerializer(data=request.data, partial=True)
        input_serializer.is_valid(raise_exception=True)

        account = update_account(actor, account.id, **input_serializer.validated_data)

        output_serializer = AccountSerializer(account)
        return Response(output_serializer.data)

    def delete(self, request, code):
        actor = resolve_actor(request)
        # Permission check happens in command

        account = self.get_object(actor, code)
        delete_account(actor, account.id)
        return Response(status=status.HTTP_204_NO_CONTENT)


# =============================================================================
# Journal Entry Views
# =============================================================================

class JournalEntryListCreateView(APIView):
    """
    GET /api/accounting/journal-entries/ -> list journal entries
        ?start=YYYY-MM-DD&end=YYYY-MM-DD&status=POSTED&page=1&page_size=25
    POST /api/accounting/journal-entries/ -> create a DRAFT entry
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, "journal.view")

        statuses = None
        status_param = request.query_params.get("status")
        if status_param:
            statuses = [s.strip().upper() for s in status_param.split(",") if s.strip()]
            invalid = [s for s in statuses if s not in JournalEntry.Status.values]
            if invalid:
                raise ValidationError({"status": [f"Invalid status: {', '.join(invalid)}."]})

        scope = actor.scope
        entries = store.list_by_date_range(
            tenant_id=scope.tenant_id,
            company_id=scope.company_id,
            start=_query_date(request, "start"),
            end=_query_date(request, "end"),
            statuses=statuses,
        )

        paginator = JournalEntryPagination()
        page = paginator.paginate_queryset(entries, request, view=self)
        serializer = JournalEntrySerializer(page, many=True)
        return paginator.get_paginated_response(serializer.data)

    def post(self, request):
        actor = resolve_actor(request)
        # Permission check happens in command

        input_serializer = JournalEntryCreateSerializer(data=request.data)
        input_serializer.is_valid(raise_exception=True)
        data = input_serializer.validated_data

        entry = create_draft(
            actor,
            date=data.get("date"),
            lines=[dict(line) for line in data.get("lines", [])],
            memo=data.get("memo", ""),
            reference=data.get("reference", ""),
            currency=data.get("currency") or None,
            source_module=data.get("source_module", "manual"),
            source_document=data.get("source_document", ""),
        )

        output_serializer = JournalEntrySerializer(entry)
        return Response(output_serializer.data, status=status.HTTP_201_CREATED)


class JournalEntryDetailView(APIView):
    """
    GET /api/accounting/journal-entries/<pk>/ -> retrieve entry
    PATCH /api/accounting/journal-entries/<pk>/ -> update a DRAFT entry
    DELETE /api/accounting/journal-entries/<pk>/ -> delete a DRAFT entry
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        actor = resolve_actor(request)
        require(actor, "journal.view")

        scope = actor.scope
        entry = store.find_by_id(pk, tenant_id=scope.tenant_id, company_id=scope.company_id)
        serializer = JournalEntrySerializer(entry)
        return Response(serializer.data)

    def patch(self, request, pk):
        actor = resolve_actor(request)
        # Permission check happens in command

        input_serializer = JournalEntryUpdateSerializer(data=request.data, partial=True)
        input_serializer.is_valid(raise_exception=True)
        data = input_serializer.validated_data

        lines = data.get("lines")
        entry = update_draft(
            actor,
            pk,
            date=data.get("date"),
            memo=data.get("memo"),
            reference=data.get("reference"),
            lines=[dict(line) for line in lines] if lines is not None else None,
        )

        output_serializer = JournalEntrySerializer(entry)
        return Response(output_serializer.data)

    def delete(self, request, pk):
        actor = resolve_actor(request)
        # Permission check happens in command

        delete_draft(actor, pk)
        return Response(status=status.HTTP_204_NO_CONTENT)


class JournalPostView(APIView):
    """POST /api/accounting/journal-entries/<pk>/post/ -> post entry"""
    permission_classes = [IsAuthenticated]

    def post(self, request, pk):
        actor = resolve_actor(request)
        # Permission check happens in command

        entry = post_entry(actor, pk)
        return Response({
            "id": entry.id,
            "status": entry.status,
            "entry_number": entry.entry_number,
            "posted_at": entry.posted_at,
            "posted_by": entry.posted_by_id,
        })


class JournalVoidView(APIView):
    """POST /api/accounting/journal-entries/<pk>/void/ -> void a posted entry"""
    permission_classes = [IsAuthenticated]

    def post(self, request, pk):
        actor = resolve_actor(request)
        # Permission check happens in command

        input_serializer = JournalEntryVoidSerializer(data=request.data)
        input_serializer.is_valid(raise_exception=True)

        entry = void_entry(actor, pk, input_serializer.validated_data["reason"])
        return Response({
            "id": entry.id,
            "status": entry.status,
            "entry_number": entry.entry_number,
            "voided_at": entry.voided_at,
            "voided_by": entry.voided_by_id,
            "void_reason": entry.void_reason,
        })


class JournalEntryAuditView(APIView):
    """GET /api/accounting/journal-entries/<pk>/audit/ -> audit trail"""
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        actor = resolve_actor(request)
        require(actor, "journal.view")

        scope = actor.scope
        entry = store.find_by_id(pk, tenant_id=scope.tenant_id, company_id=scope.company_id)
        serializer = JournalEntryAuditSerializer(
            entry.audit_trail.select_related("actor"), many=True,
        )
        return Response(serializer.data)


class JournalEntrySummaryView(APIView):
    """
    GET /api/accounting/journal-entries/summary/ -> entry counts per status
        ?start=YYYY-MM-DD&end=YYYY-MM-DD
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, "journal.view")

        start = _query_date(request, "start")
        end = _query_date(request, "end")
        if start and end and start > end:
            raise ValidationError({"start": ["Start date must be on or before end date."]})

        scope = actor.scope
        summary = store.summarize(
            tenant_id=scope.tenant_id,
            company_id=scope.company_id,
            start=start,
            end=end,
        )
        summary["posted_debit"] = str(summary["posted_debit"])
        summary["posted_credit"] = str(summary["posted_credit"])
        return Response(summary)
