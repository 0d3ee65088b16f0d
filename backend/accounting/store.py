# accounting/store.py
"""
Ledger Entry Store.

Persistence for journal entries and their lines, always confined to one
tenant + company. Every public function takes the scope explicitly; a
missing component raises ScopeError before any query runs.

Status changes go through ``transition_status``, a conditional UPDATE keyed
on the current status. Two callers racing on the same entry therefore get
exactly one winner: the loser sees zero rows updated.

Database connectivity failures surface as StoreUnavailableError.
"""

import logging
from contextlib import contextmanager
from decimal import Decimal

from django.db import IntegrityError, InterfaceError, OperationalError, transaction
from django.db.models import Count, Sum
from django.utils import timezone

from accounting.exceptions import (
    InvalidStateError,
    NotFoundError,
    ScopeError,
    StoreUnavailableError,
    ValidationError,
)
from accounting.models import AMOUNT_LIMIT, CompanySequence, JournalEntry, JournalEntryAudit, JournalLine
from accounting.policies import can_transition

logger = logging.getLogger(__name__)

ENTRY_SEQUENCE = "journal_entry_number"


def _require_scope(tenant_id, company_id) -> None:
    if tenant_id is None or company_id is None:
        raise ScopeError(
            "Ledger access requires both tenant and company.",
            details={"tenant_id": tenant_id, "company_id": company_id},
        )


@contextmanager
def _store_errors():
    try:
        yield
    except (OperationalError, InterfaceError) as exc:
        logger.error("Ledger store unavailable", extra={"error": str(exc)})
        raise StoreUnavailableError(details={"error": str(exc)}) from exc


def next_entry_number(company_id: int) -> str:
    """
    Allocate the next entry number for a company (JE-000001, JE-000002, ...).
    Uses select_for_update to avoid concurrent duplicates; call inside a
    transaction.
    """
    try:
        seq = CompanySequence.objects.select_for_update().get(
            company_id=company_id,
            name=ENTRY_SEQUENCE,
        )
    except CompanySequence.DoesNotExist:
        try:
            with transaction.atomic():
                seq = CompanySequence.objects.create(
                    company_id=company_id,
                    name=ENTRY_SEQUENCE,
                    next_value=1,
                )
        except IntegrityError:
            seq = CompanySequence.objects.select_for_update().get(
                company_id=company_id,
                name=ENTRY_SEQUENCE,
            )

    value = seq.next_value
    seq.next_value = value + 1
    seq.save(update_fields=["next_value", "updated_at"])
    return f"JE-{value:06d}"


def _check_line(entry: JournalEntry, line: JournalLine, index: int, errors: dict) -> None:
    account = line.account
    if (account.tenant_id, account.company_id) != (entry.tenant_id, entry.company_id):
        logger.warning(
            "Rejected journal line referencing an account from another scope",
            extra={
                "tenant_id": entry.tenant_id,
                "company_id": entry.company_id,
                "account_id": account.id,
            },
        )
        raise ScopeError(
            "Journal line references an account outside the entry's company.",
            details={"line": index + 1, "account_id": account.id},
        )

    debit = Decimal(line.debit or 0)
    credit = Decimal(line.credit or 0)
    prefix = f"lines[{index}]"
    if debit < 0 or credit < 0:
        errors.setdefault(prefix, []).append("Debit/Credit cannot be negative.")
    elif debit >= AMOUNT_LIMIT or credit >= AMOUNT_LIMIT:
        errors.setdefault(prefix, []).append("Amount cannot have more than 16 digits before the decimal point.")
    elif debit == 0 and credit == 0:
        errors.setdefault(prefix, []).append("A line must have a debit or a credit amount.")
    elif debit > 0 and credit > 0:
        errors.setdefault(prefix, []).append("A line cannot have both debit and credit.")


def save(entry: JournalEntry, lines=None) -> JournalEntry:
    """
    Persist a DRAFT entry and, when ``lines`` is given, replace its lines.

    Lines are unsaved JournalLine instances; the store fills in entry,
    scope and line numbers. Entry numbers are allocated on first save.

    Raises:
        ScopeError: entry without scope, or a line account from another scope
        InvalidStateError: the stored entry is no longer DRAFT
        ValidationError: negative, both-zero or two-sided line amounts
    """
    _require_scope(entry.tenant_id, entry.company_id)

    if entry.status != JournalEntry.Status.DRAFT:
        raise InvalidStateError(
            f"Cannot save a {entry.status} entry.",
            status=entry.status,
            attempted="save",
        )

    if lines is not None:
        errors = {}
        for index, line in enumerate(lines):
            _check_line(entry, line, index, errors)
        if errors:
            raise ValidationError(errors)

    with _store_errors(), transaction.atomic():
        if entry.pk:
            stored_status = (
                JournalEntry.objects.select_for_update()
                .filter(pk=entry.pk, tenant_id=entry.tenant_id, company_id=entry.company_id)
                .values_list("status", flat=True)
                .first()
            )
            if stored_status is None:
                raise NotFoundError("Journal entry not found.")
            if stored_status != JournalEntry.Status.DRAFT:
                raise InvalidStateError(
                    f"Cannot modify a {stored_status} entry.",
                    status=stored_status,
                    attempted="save",
                )

        if not entry.entry_number:
            entry.entry_number = next_entry_number(entry.company_id)
        entry.save()

        if lines is not None:
            entry.lines.all().delete()
            for line_no, line in enumerate(lines, start=1):
                line.entry = entry
                line.tenant_id = entry.tenant_id
                line.company_id = entry.company_id
                line.line_no = line_no
                line.currency = line.currency or entry.currency
            JournalLine.objects.bulk_create(lines)

    return entry


def find_by_id(entry_id, *, tenant_id, company_id, for_update=False) -> JournalEntry:
    """
    Load an entry inside the given scope.

    An id that exists only under another tenant/company is reported as
    NotFoundError, never as the foreign entry.
    """
    _require_scope(tenant_id, company_id)

    try:
        entry_id = int(entry_id)
    except (TypeError, ValueError):
        raise NotFoundError("Journal entry not found.", details={"entry_id": str(entry_id)})

    qs = JournalEntry.objects.select_related("company", "tenant")
    if for_update:
        qs = qs.select_for_update(of=("self",))

    with _store_errors():
        entry = qs.filter(pk=entry_id, tenant_id=tenant_id, company_id=company_id).first()
        if entry is None:
            if JournalEntry.objects.filter(pk=entry_id).exists():
                logger.warning(
                    "Journal entry lookup crossed scope",
                    extra={"entry_id": entry_id, "tenant_id": tenant_id, "company_id": company_id},
                )
            raise NotFoundError("Journal entry not found.", details={"entry_id": entry_id})
    return entry


def list_by_date_range(*, tenant_id, company_id, start=None, end=None, statuses=None):
    """Entries dated within [start, end] (inclusive), ordered by (date, id)."""
    _require_scope(tenant_id, company_id)

    qs = JournalEntry.objects.filter(tenant_id=tenant_id, company_id=company_id)
    if start is not None:
        qs = qs.filter(date__gte=start)
    if end is not None:
        qs = qs.filter(date__lte=end)
    if statuses is not None:
        qs = qs.filter(status__in=list(statuses))
    return qs.prefetch_related("lines__account").order_by("date", "id")


def lines_in_scope(
    *,
    tenant_id,
    company_id,
    statuses,
    start=None,
    end=None,
    before=None,
    account_id=None,
    cash_only=False,
):
    """
    Journal lines of entries in ``statuses``, ordered by
    (entry date, entry id, line_no). Used by the reporting projections.

    ``start``/``end`` bound the entry date inclusively; ``before`` is an
    exclusive upper bound used for opening balances.
    """
    _require_scope(tenant_id, company_id)

    qs = JournalLine.objects.filter(
        tenant_id=tenant_id,
        company_id=company_id,
        entry__status__in=list(statuses),
    )
    if start is not None:
        qs = qs.filter(entry__date__gte=start)
    if end is not None:
        qs = qs.filter(entry__date__lte=end)
    if before is not None:
        qs = qs.filter(entry__date__lt=before)
    if account_id is not None:
        qs = qs.filter(account_id=account_id)
    if cash_only:
        qs = qs.filter(account__is_cash_equivalent=True)
    return qs.select_related("entry", "account").order_by("entry__date", "entry_id", "line_no")


def summarize(*, tenant_id, company_id, start=None, end=None) -> dict:
    """
    Entry counts per status for [start, end] plus debit/credit totals of
    the POSTED entries in that range.
    """
    _require_scope(tenant_id, company_id)

    entries = JournalEntry.objects.filter(tenant_id=tenant_id, company_id=company_id)
    if start is not None:
        entries = entries.filter(date__gte=start)
    if end is not None:
        entries = entries.filter(date__lte=end)

    by_status = {value: 0 for value in JournalEntry.Status.values}
    with _store_errors():
        for row in entries.order_by().values("status").annotate(count=Count("id")):
            by_status[row["status"]] = row["count"]
        totals = JournalLine.objects.filter(
            entry__in=entries.filter(status=JournalEntry.Status.POSTED),
        ).aggregate(debit=Sum("debit"), credit=Sum("credit"))

    return {
        "start": start,
        "end": end,
        "total_entries": sum(by_status.values()),
        "by_status": by_status,
        "posted_debit": totals["debit"] or Decimal("0.00"),
        "posted_credit": totals["credit"] or Decimal("0.00"),
    }


def transition_status(entry_id, *, tenant_id, company_id, from_status, to_status, **fields) -> bool:
    """
    Atomically move an entry from ``from_status`` to ``to_status``.

    Returns True when this call performed the transition, False when the
    entry was no longer in ``from_status`` (another caller got there first).
    Extra ``fields`` (posted_at, voided_by, ...) are written in the same
    UPDATE.
    """
    _require_scope(tenant_id, company_id)

    if not can_transition(from_status, to_status):
        raise InvalidStateError(
            f"Transition {from_status} -> {to_status} is not allowed.",
            status=from_status,
            attempted=to_status,
        )

    with _store_errors():
        updated = JournalEntry.objects.filter(
            pk=entry_id,
            tenant_id=tenant_id,
            company_id=company_id,
            status=from_status,
        ).update(status=to_status, updated_at=timezone.now(), **fields)
    return updated == 1


def snapshot(entry: JournalEntry) -> dict:
    """The fixed set of values recorded in the audit trail."""
    total_debit, total_credit = entry.totals()
    return {
        "status": entry.status,
        "line_count": entry.lines.count(),
        "total_debit": str(total_debit),
        "total_credit": str(total_credit),
        "void_reason": entry.void_reason,
    }


def record_audit(entry, action, *, actor=None, old_values=None, new_values=None, comment="") -> JournalEntryAudit:
    _require_scope(entry.tenant_id, entry.company_id)
    with _store_errors():
        return JournalEntryAudit.objects.create(
            entry=entry,
            tenant_id=entry.tenant_id,
            company_id=entry.company_id,
            action=action,
            actor=actor,
            old_values=old_values or {},
            new_values=new_values or {},
            comment=comment[:255],
        )
