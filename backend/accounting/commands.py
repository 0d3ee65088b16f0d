# accounting/commands.py
"""
Command layer for accounting operations.

Commands are the single point where business operations happen.
Views call commands; commands enforce rules and persist through the
ledger store.

Pattern:
1. Validate permissions (require)
2. Validate input, collecting every problem before failing
3. Apply business policies (can_*)
4. Persist through accounting.store inside one transaction
5. Record the audit trail and schedule notifications after commit
6. Return the affected model

Failures raise the ledger error taxonomy (accounting.exceptions); a failed
command leaves the database unchanged.
"""

import logging
from decimal import Decimal, InvalidOperation

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError, transaction
from django.utils import timezone
from django.utils.dateparse import parse_date

from accounts.authz import ActorContext, require
from accounting import store
from accounting.exceptions import (
    InvalidStateError,
    NotFoundError,
    ScopeError,
    UnbalancedEntryError,
    ValidationError,
)
from accounting.models import AMOUNT_LIMIT, Account, JournalEntry, JournalEntryAudit, JournalLine
from accounting.notifications import notify_entry_status
from ops.metrics import record_transition
from accounting.policies import (
    can_change_account_type,
    can_delete_account,
    can_delete_entry,
    can_edit_entry,
    can_post_entry,
    can_post_to_account,
    can_void_entry,
    check_tenant_boundary,
)

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def _log_extra(actor: ActorContext, entry=None, **extra) -> dict:
    data = {"tenant_id": actor.tenant.id, "company_id": actor.company.id, "user_id": actor.user.id}
    if entry is not None:
        data.update(entry_id=entry.pk, entry_number=entry.entry_number, status=entry.status)
    data.update(extra)
    return data


# =============================================================================
# Input parsing
# =============================================================================

def _parse_date(value, errors: dict, field: str = "date"):
    if value in (None, ""):
        errors.setdefault(field, []).append("Date is required.")
        return None
    if hasattr(value, "year"):
        return value
    try:
        parsed = parse_date(str(value))
    except ValueError:
        parsed = None
    if parsed is None:
        errors.setdefault(field, []).append("Enter a valid date (YYYY-MM-DD).")
    return parsed


def _parse_amount(value, errors: dict, field: str):
    if value in (None, ""):
        return ZERO
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        errors.setdefault(field, []).append("Enter a valid decimal amount.")
        return None
    if not amount.is_finite():
        errors.setdefault(field, []).append("Enter a valid decimal amount.")
        return None
    if amount < 0:
        errors.setdefault(field, []).append("Amount cannot be negative.")
        return None
    if amount >= AMOUNT_LIMIT:
        errors.setdefault(field, []).append("Amount cannot have more than 16 digits before the decimal point.")
        return None
    try:
        quantized = amount.quantize(CENT)
    except InvalidOperation:
        errors.setdefault(field, []).append("Enter a valid decimal amount.")
        return None
    if amount != quantized:
        errors.setdefault(field, []).append("Amount cannot have more than 2 decimal places.")
        return None
    return quantized


def _load_line_accounts(actor: ActorContext, lines: list) -> dict:
    """
    Fetch every account referenced by ``lines`` in one query, keyed by id.

    Accounts referenced by code are resolved inside the actor's scope only.
    """
    ids = set()
    codes = set()
    for line in lines:
        if not isinstance(line, dict):
            continue
        if line.get("account_id") not in (None, ""):
            try:
                ids.add(int(line["account_id"]))
            except (TypeError, ValueError):
                pass
        elif line.get("account_code"):
            codes.add(str(line["account_code"]))

    by_id = {a.id: a for a in Account.objects.filter(pk__in=ids)}
    by_code = {
        a.code: a
        for a in Account.objects.filter(
            tenant=actor.tenant, company=actor.company, code__in=codes
        )
    }
    return {"id": by_id, "code": by_code}


def _build_lines(actor: ActorContext, lines, currency: str, errors: dict) -> list:
    """
    Validate raw line dicts and turn them into unsaved JournalLine objects.

    Field problems are collected into ``errors``. An account that exists in
    another tenant/company raises ScopeError straight away.
    """
    if not lines:
        errors.setdefault("lines", []).append("At least one line is required.")
        return []

    accounts = _load_line_accounts(actor, lines)
    built = []

    for index, raw in enumerate(lines):
        prefix = f"lines[{index}]"
        if not isinstance(raw, dict):
            errors.setdefault(prefix, []).append("Each line must be an object.")
            continue

        account = None
        if raw.get("account_id") not in (None, ""):
            try:
                account = accounts["id"].get(int(raw["account_id"]))
            except (TypeError, ValueError):
                account = None
            missing_label = raw.get("account_id")
        elif raw.get("account_code"):
            account = accounts["code"].get(str(raw["account_code"]))
            missing_label = raw.get("account_code")
        else:
            errors.setdefault(f"{prefix}.account_id", []).append("Account is required.")
            missing_label = None

        if account is None and missing_label is not None:
            errors.setdefault(f"{prefix}.account_id", []).append(
                f"Account {missing_label} not found."
            )
        elif account is not None:
            if not check_tenant_boundary(actor, account):
                logger.warning(
                    "Journal line references an account outside the actor's scope",
                    extra=_log_extra(actor, account_id=account.id),
                )
                raise ScopeError(
                    "Journal line references an account from another company.",
                    details={"line": index + 1, "account_id": account.id},
                )
            allowed, reason = can_post_to_account(account)
            if not allowed:
                errors.setdefault(f"{prefix}.account_id", []).append(reason)

        debit = _parse_amount(raw.get("debit"), errors, f"{prefix}.debit")
        credit = _parse_amount(raw.get("credit"), errors, f"{prefix}.credit")
        if debit is not None and credit is not None:
            if debit == 0 and credit == 0:
                errors.setdefault(prefix, []).append("A line must have a debit or a credit amount.")
            elif debit > 0 and credit > 0:
                errors.setdefault(prefix, []).append("A line cannot have both debit and credit.")

        line_currency = (raw.get("currency") or currency).upper()
        if line_currency != currency:
            errors.setdefault(f"{prefix}.currency", []).append(
                f"Line currency {line_currency} does not match entry currency {currency}."
            )

        if account is not None and debit is not None and credit is not None:
            built.append(JournalLine(
                account=account,
                description=raw.get("description", "") or "",
                debit=debit,
                credit=credit,
                currency=line_currency,
            ))

    return built


# =============================================================================
# Account Commands
# =============================================================================

def _get_account(actor: ActorContext, account_id, for_update=False) -> Account:
    qs = Account.objects.filter(tenant=actor.tenant, company=actor.company)
    if for_update:
        qs = qs.select_for_update()
    account = qs.filter(pk=account_id).first()
    if account is None:
        raise NotFoundError("Account not found.", details={"account_id": account_id})
    return account


def _resolve_parent(actor: ActorContext, parent_id, errors: dict):
    if parent_id in (None, ""):
        return None
    parent = Account.objects.filter(pk=parent_id).first()
    if parent is None:
        errors.setdefault("parent_id", []).append("Parent account not found.")
        return None
    if not check_tenant_boundary(actor, parent):
        raise ScopeError(
            "Parent account belongs to another company.",
            details={"parent_id": parent_id},
        )
    return parent


def _save_account(account: Account) -> Account:
    try:
        with transaction.atomic():
            account.save()
    except DjangoValidationError as exc:
        raise ValidationError(
            getattr(exc, "message_dict", None) or {"account": exc.messages}
        ) from exc
    except IntegrityError as exc:
        raise ValidationError({"code": [f"Account code '{account.code}' already exists."]}) from exc
    return account


@transaction.atomic
def create_account(
    actor: ActorContext,
    code: str,
    name: str,
    account_type: str,
    parent_id: int = None,
    is_cash_equivalent: bool = False,
    description: str = "",
    status: str = Account.Status.ACTIVE,
) -> Account:
    """
    Create a new account in the chart of accounts.

    Args:
        actor: The actor context (user + tenant + company)
        code: Account code (unique per company)
        name: Account name
        account_type: One of Account.AccountType choices
        parent_id: Optional parent account ID (same company)
        is_cash_equivalent: Include in the cash flow report
        description: Free text
        status: ACTIVE or INACTIVE

    Returns:
        The created Account
    """
    require(actor, "accounts.manage")

    errors = {}
    code = (code or "").strip()
    if not code:
        errors.setdefault("code", []).append("Code is required.")
    elif Account.objects.filter(tenant=actor.tenant, company=actor.company, code=code).exists():
        errors.setdefault("code", []).append(f"Account code '{code}' already exists.")
    if not (name or "").strip():
        errors.setdefault("name", []).append("Name is required.")
    if account_type not in Account.AccountType.values:
        errors.setdefault("account_type", []).append(f"Invalid account type: {account_type}.")
    if status not in Account.Status.values:
        errors.setdefault("status", []).append(f"Invalid status: {status}.")

    parent = _resolve_parent(actor, parent_id, errors)
    if errors:
        raise ValidationError(errors)

    account = _save_account(Account(
        tenant=actor.tenant,
        company=actor.company,
        code=code,
        name=name.strip(),
        account_type=account_type,
        parent=parent,
        is_cash_equivalent=is_cash_equivalent,
        description=description or "",
        status=status,
    ))
    logger.info("Account created", extra=_log_extra(actor, account_id=account.id, code=account.code))
    return account


@transaction.atomic
def update_account(actor: ActorContext, account_id: int, **updates) -> Account:
    """
    Update an existing account.

    Changing ``account_type`` is rejected once journal lines reference the
    account. Deactivating an account keeps its history; it only blocks new
    postings.
    """
    require(actor, "accounts.manage")

    account = _get_account(actor, account_id, for_update=True)

    allowed_fields = {"code", "name", "account_type", "parent_id", "status",
                      "is_cash_equivalent", "description"}
    unknown = set(updates) - allowed_fields
    if unknown:
        raise ValidationError({field: ["This field cannot be updated."] for field in sorted(unknown)})

    errors = {}
    if "code" in updates and updates["code"] != account.code:
        new_code = (updates["code"] or "").strip()
        if not new_code:
            errors.setdefault("code", []).append("Code is required.")
        elif Account.objects.filter(
            tenant=actor.tenant, company=actor.company, code=new_code,
        ).exclude(pk=account.pk).exists():
            errors.setdefault("code", []).append(f"Account code '{new_code}' already exists.")
        updates["code"] = new_code

    if "account_type" in updates and updates["account_type"] != account.account_type:
        if updates["account_type"] not in Account.AccountType.values:
            errors.setdefault("account_type", []).append(
                f"Invalid account type: {updates['account_type']}."
            )
        else:
            allowed, reason = can_change_account_type(actor, account)
            if not allowed:
                errors.setdefault("account_type", []).append(reason)

    if "status" in updates and updates["status"] not in Account.Status.values:
        errors.setdefault("status", []).append(f"Invalid status: {updates['status']}.")

    if "parent_id" in updates:
        updates["parent"] = _resolve_parent(actor, updates.pop("parent_id"), errors)

    if errors:
        raise ValidationError(errors)

    for field, value in updates.items():
        setattr(account, field, value)

    _save_account(account)
    logger.info("Account updated", extra=_log_extra(actor, account_id=account.id, fields=sorted(updates)))
    return account


@transaction.atomic
def delete_account(actor: ActorContext, account_id: int) -> None:
    require(actor, "accounts.manage")

    account = _get_account(actor, account_id, for_update=True)

    allowed, reason = can_delete_account(actor, account)
    if not allowed:
        raise InvalidStateError(reason, attempted="delete_account")

    account.delete()
    logger.info("Account deleted", extra=_log_extra(actor, account_id=account_id))


# =============================================================================
# Journal Entry Commands
# =============================================================================

@transaction.atomic
def create_draft(
    actor: ActorContext,
    date,
    lines,
    memo: str = "",
    reference: str = "",
    currency: str = None,
    source_module: str = "manual",
    source_document: str = "",
) -> JournalEntry:
    """
    Create a journal entry in DRAFT status.

    Every field problem is collected and reported in a single
    ValidationError. Drafts do not need to balance.

    Args:
        actor: The actor context
        date: Entry date (date or ISO string)
        lines: List of dicts with account_id (or account_code), debit,
               credit, and optional description/currency
        memo: Entry description
        reference: External reference
        currency: ISO code, defaults to the company currency
        source_module: Producer of the entry ('manual', 'invoice', ...)
        source_document: Producer's document reference

    Returns:
        The created JournalEntry
    """
    require(actor, "journal.edit_draft")

    errors = {}
    entry_date = _parse_date(date, errors)
    currency = (currency or actor.company.default_currency).upper()
    if len(currency) != 3:
        errors.setdefault("currency", []).append("Currency must be a 3-letter ISO code.")
    built_lines = _build_lines(actor, lines, currency, errors)

    if errors:
        raise ValidationError(errors)

    entry = JournalEntry(
        tenant=actor.tenant,
        company=actor.company,
        date=entry_date,
        memo=memo or "",
        reference=reference or "",
        currency=currency,
        status=JournalEntry.Status.DRAFT,
        source_module=source_module or "manual",
        source_document=source_document or "",
        created_by=actor.user,
    )
    store.save(entry, built_lines)
    store.record_audit(
        entry,
        JournalEntryAudit.Action.CREATED,
        actor=actor.user,
        new_values=store.snapshot(entry),
    )

    logger.info("Journal entry drafted", extra=_log_extra(actor, entry))
    return entry


@transaction.atomic
def update_draft(
    actor: ActorContext,
    entry_id,
    date=None,
    memo: str = None,
    reference: str = None,
    lines=None,
) -> JournalEntry:
    """
    Update a DRAFT entry. When ``lines`` is given it replaces every
    existing line. Posted and void entries are immutable.
    """
    require(actor, "journal.edit_draft")

    scope = actor.scope
    entry = store.find_by_id(
        entry_id, tenant_id=scope.tenant_id, company_id=scope.company_id, for_update=True,
    )

    allowed, reason = can_edit_entry(actor, entry)
    if not allowed:
        raise InvalidStateError(reason, status=entry.status, attempted="update")

    errors = {}
    new_date = _parse_date(date, errors) if date is not None else entry.date
    built_lines = None
    if lines is not None:
        built_lines = _build_lines(actor, lines, entry.currency, errors)
    if errors:
        raise ValidationError(errors)

    old_values = store.snapshot(entry)

    entry.date = new_date
    if memo is not None:
        entry.memo = memo
    if reference is not None:
        entry.reference = reference

    store.save(entry, built_lines)
    store.record_audit(
        entry,
        JournalEntryAudit.Action.UPDATED,
        actor=actor.user,
        old_values=old_values,
        new_values=store.snapshot(entry),
    )

    logger.info("Journal entry draft updated", extra=_log_extra(actor, entry))
    return entry


@transaction.atomic
def delete_draft(actor: ActorContext, entry_id) -> None:
    """Delete a DRAFT entry. Posted entries are kept forever (void instead)."""
    require(actor, "journal.edit_draft")

    scope = actor.scope
    entry = store.find_by_id(
        entry_id, tenant_id=scope.tenant_id, company_id=scope.company_id, for_update=True,
    )

    allowed, reason = can_delete_entry(actor, entry)
    if not allowed:
        raise InvalidStateError(reason, status=entry.status, attempted="delete")

    extra = _log_extra(actor, entry)
    entry.delete()
    logger.info("Journal entry draft deleted", extra=extra)


def post_entry(actor: ActorContext, entry_id) -> JournalEntry:
    """
    Post a DRAFT entry, making it affect account balances.

    Inside one transaction: scoped load, status check, line re-validation
    (accounts still exist, in scope and ACTIVE), balance check, then a
    conditional DRAFT -> POSTED update. If a concurrent caller already
    moved the entry, the update matches no row and InvalidStateError is
    raised. The notification is sent only after the transaction commits.

    Raises:
        NotFoundError, InvalidStateError, ValidationError, ScopeError,
        UnbalancedEntryError
    """
    require(actor, "journal.post")

    scope = actor.scope
    with transaction.atomic():
        entry = store.find_by_id(
            entry_id, tenant_id=scope.tenant_id, company_id=scope.company_id, for_update=True,
        )

        allowed, reason = can_post_entry(actor, entry)
        if not allowed:
            raise InvalidStateError(reason, status=entry.status, attempted="post")

        lines = list(entry.lines.select_related("account").order_by("line_no"))
        if not lines:
            raise ValidationError({"lines": ["Entry must have at least one line to be posted."]})

        errors = {}
        for index, line in enumerate(lines):
            if not check_tenant_boundary(actor, line.account):
                logger.warning(
                    "Posting blocked by a line outside the entry's scope",
                    extra=_log_extra(actor, entry, account_id=line.account_id),
                )
                raise ScopeError(
                    "Journal line references an account from another company.",
                    details={"line": line.line_no, "account_id": line.account_id},
                )
            allowed, reason = can_post_to_account(line.account)
            if not allowed:
                errors.setdefault(f"lines[{index}].account_id", []).append(reason)
        if errors:
            raise ValidationError(errors)

        total_debit = sum((line.debit for line in lines), ZERO).quantize(CENT)
        total_credit = sum((line.credit for line in lines), ZERO).quantize(CENT)
        if total_debit != total_credit:
            raise UnbalancedEntryError(total_debit, total_credit)

        old_values = store.snapshot(entry)
        won = store.transition_status(
            entry.pk,
            tenant_id=scope.tenant_id,
            company_id=scope.company_id,
            from_status=JournalEntry.Status.DRAFT,
            to_status=JournalEntry.Status.POSTED,
            posted_at=timezone.now(),
            posted_by=actor.user,
        )
        if not won:
            logger.info("Lost posting race", extra=_log_extra(actor, entry))
            raise InvalidStateError(
                "Entry was posted by a concurrent request.",
                status=JournalEntry.Status.POSTED,
                attempted="post",
            )

        entry.refresh_from_db()
        store.record_audit(
            entry,
            JournalEntryAudit.Action.POSTED,
            actor=actor.user,
            old_values=old_values,
            new_values=store.snapshot(entry),
        )
        notify_entry_status(entry, "posted")

    record_transition("posted")
    logger.info(
        "Journal entry posted",
        extra=_log_extra(actor, entry, total_debit=str(total_debit), total_credit=str(total_credit)),
    )
    return entry


def void_entry(actor: ActorContext, entry_id, reason: str) -> JournalEntry:
    """
    Void a POSTED entry.

    Lines stay untouched; the entry keeps its history and drops out of every
    balance report. A non-blank reason is mandatory.
    """
    require(actor, "journal.void")

    reason = (reason or "").strip()
    if not reason:
        raise ValidationError({"reason": ["A reason is required to void an entry."]})

    scope = actor.scope
    with transaction.atomic():
        entry = store.find_by_id(
            entry_id, tenant_id=scope.tenant_id, company_id=scope.company_id, for_update=True,
        )

        allowed, why = can_void_entry(actor, entry)
        if not allowed:
            raise InvalidStateError(why, status=entry.status, attempted="void")

        old_values = store.snapshot(entry)
        won = store.transition_status(
            entry.pk,
            tenant_id=scope.tenant_id,
            company_id=scope.company_id,
            from_status=JournalEntry.Status.POSTED,
            to_status=JournalEntry.Status.VOID,
            voided_at=timezone.now(),
            voided_by=actor.user,
            void_reason=reason,
        )
        if not won:
            raise InvalidStateError(
                "Entry was voided by a concurrent request.",
                status=JournalEntry.Status.VOID,
                attempted="void",
            )

        entry.refresh_from_db()
        store.record_audit(
            entry,
            JournalEntryAudit.Action.VOIDED,
            actor=actor.user,
            old_values=old_values,
            new_values=store.snapshot(entry),
            comment=reason,
        )
        notify_entry_status(entry, "voided")

    record_transition("voided")
    logger.info("Journal entry voided", extra=_log_extra(actor, entry))
    return entry
