# projections/ledger.py
"""
Reporting projections over the journal.

Read-only views derived from journal lines:
- general_ledger: per-account line listing with running balance
- trial_balance: per-account debit/credit totals and net balance
- cash_flow: movements on cash-equivalent accounts

Only POSTED entries count by default. ``include_drafts=True`` adds DRAFT
entries for preview reports. VOID entries never appear.

All figures are Decimal; the HTTP layer renders them as strings.
"""

import logging
from decimal import Decimal

from django.db.models import Sum

from accounting import store
from accounting.models import Account, JournalEntry

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


def reportable_statuses(include_drafts: bool = False) -> list[str]:
    statuses = [JournalEntry.Status.POSTED]
    if include_drafts:
        statuses.append(JournalEntry.Status.DRAFT)
    return statuses


def _net_by_account(scope, statuses, *, before=None, account_id=None, cash_only=False) -> dict:
    """{account_id: debit - credit} over every line dated before ``before``."""
    rows = (
        store.lines_in_scope(
            tenant_id=scope.tenant_id,
            company_id=scope.company_id,
            statuses=statuses,
            before=before,
            account_id=account_id,
            cash_only=cash_only,
        )
        .order_by()
        .values("account_id")
        .annotate(debit=Sum("debit"), credit=Sum("credit"))
    )
    return {row["account_id"]: (row["debit"] or ZERO) - (row["credit"] or ZERO) for row in rows}


def _opening_balances(scope, statuses, start, **filters) -> dict:
    if start is None:
        return {}
    return _net_by_account(scope, statuses, before=start, **filters)


# =============================================================================
# General Ledger
# =============================================================================

def general_ledger(scope, start=None, end=None, account_id=None, include_drafts=False) -> dict:
    """
    General ledger for [start, end].

    Groups lines by account (ordered by account code). Within a group, lines
    are ordered by (entry date, entry id, line_no) and carry a running
    balance of debit minus credit, starting from the account's balance
    before ``start``.
    """
    statuses = reportable_statuses(include_drafts)
    lines = store.lines_in_scope(
        tenant_id=scope.tenant_id,
        company_id=scope.company_id,
        statuses=statuses,
        start=start,
        end=end,
        account_id=account_id,
    )
    opening = _opening_balances(scope, statuses, start, account_id=account_id)

    groups = {}
    for line in lines:
        account = line.account
        group = groups.get(account.id)
        if group is None:
            balance = opening.get(account.id, ZERO)
            group = groups[account.id] = {
                "account_id": account.id,
                "code": account.code,
                "name": account.name,
                "account_type": account.account_type,
                "normal_balance": account.normal_balance,
                "opening_balance": balance,
                "lines": [],
                "total_debit": ZERO,
                "total_credit": ZERO,
                "closing_balance": balance,
            }

        group["closing_balance"] += line.debit - line.credit
        group["total_debit"] += line.debit
        group["total_credit"] += line.credit
        group["lines"].append({
            "entry_id": line.entry_id,
            "entry_number": line.entry.entry_number,
            "date": line.entry.date,
            "status": line.entry.status,
            "memo": line.entry.memo,
            "line_no": line.line_no,
            "description": line.description,
            "debit": line.debit,
            "credit": line.credit,
            "balance": group["closing_balance"],
        })

    accounts = sorted(groups.values(), key=lambda g: g["code"])
    return {
        "start": start,
        "end": end,
        "include_drafts": include_drafts,
        "accounts": accounts,
        "total_debit": sum((g["total_debit"] for g in accounts), ZERO),
        "total_credit": sum((g["total_credit"] for g in accounts), ZERO),
    }


# =============================================================================
# Trial Balance
# =============================================================================

def trial_balance(scope, as_of=None, include_drafts=False) -> dict:
    """
    Trial balance as of a date (inclusive; None means all dates).

    Each account with activity shows its total debit, total credit and net
    balance (debit - credit). The net is presented in the debit column when
    positive and in the credit column when negative. Accounts without
    activity are omitted.
    """
    rows = (
        store.lines_in_scope(
            tenant_id=scope.tenant_id,
            company_id=scope.company_id,
            statuses=reportable_statuses(include_drafts),
            end=as_of,
        )
        .order_by("account__code")
        .values(
            "account_id",
            "account__code",
            "account__name",
            "account__account_type",
            "account__normal_balance",
        )
        .annotate(debit=Sum("debit"), credit=Sum("credit"))
    )

    accounts = []
    total_debit = ZERO
    total_credit = ZERO
    total_debit_balance = ZERO
    total_credit_balance = ZERO

    for row in rows:
        debit = row["debit"] or ZERO
        credit = row["credit"] or ZERO
        net = debit - credit
        debit_balance = net if net > 0 else ZERO
        credit_balance = -net if net < 0 else ZERO

        accounts.append({
            "account_id": row["account_id"],
            "code": row["account__code"],
            "name": row["account__name"],
            "account_type": row["account__account_type"],
            "normal_balance": row["account__normal_balance"],
            "total_debit": debit,
            "total_credit": credit,
            "net": net,
            "debit_balance": debit_balance,
            "credit_balance": credit_balance,
        })

        total_debit += debit
        total_credit += credit
        total_debit_balance += debit_balance
        total_credit_balance += credit_balance

    if total_debit != total_credit and not include_drafts:
        # Posted entries always balance; a gap here means corrupted data.
        logger.error(
            "Posted trial balance does not balance",
            extra={
                "tenant_id": scope.tenant_id,
                "company_id": scope.company_id,
                "total_debit": str(total_debit),
                "total_credit": str(total_credit),
            },
        )

    return {
        "as_of": as_of,
        "include_drafts": include_drafts,
        "accounts": accounts,
        "total_debit": total_debit,
        "total_credit": total_credit,
        "total_debit_balance": total_debit_balance,
        "total_credit_balance": total_credit_balance,
        "is_balanced": total_debit == total_credit,
    }


# =============================================================================
# Cash Flow
# =============================================================================

def cash_flow(scope, start=None, end=None, include_drafts=False) -> dict:
    """
    Cash movements for [start, end] on accounts flagged is_cash_equivalent.

    A debit to a cash account is an inflow, a credit is an outflow.
    Opening balance covers every line before ``start``; closing is opening
    plus net change.
    """
    statuses = reportable_statuses(include_drafts)
    lines = store.lines_in_scope(
        tenant_id=scope.tenant_id,
        company_id=scope.company_id,
        statuses=statuses,
        start=start,
        end=end,
        cash_only=True,
    )
    opening = _opening_balances(scope, statuses, start, cash_only=True)

    by_account = {}
    movements = []
    for line in lines:
        account = line.account
        row = by_account.get(account.id)
        if row is None:
            row = by_account[account.id] = {
                "account_id": account.id,
                "code": account.code,
                "name": account.name,
                "opening_balance": opening.get(account.id, ZERO),
                "inflows": ZERO,
                "outflows": ZERO,
            }
        row["inflows"] += line.debit
        row["outflows"] += line.credit
        movements.append({
            "entry_id": line.entry_id,
            "entry_number": line.entry.entry_number,
            "date": line.entry.date,
            "account_code": account.code,
            "description": line.description or line.entry.memo,
            "inflow": line.debit,
            "outflow": line.credit,
        })

    # Cash accounts with an opening balance but no movement in the window.
    if opening:
        idle = Account.objects.filter(
            tenant_id=scope.tenant_id,
            company_id=scope.company_id,
            pk__in=[pk for pk in opening if pk not in by_account],
        )
        for account in idle:
            by_account[account.id] = {
                "account_id": account.id,
                "code": account.code,
                "name": account.name,
                "opening_balance": opening[account.id],
                "inflows": ZERO,
                "outflows": ZERO,
            }

    accounts = sorted(by_account.values(), key=lambda r: r["code"])
    for row in accounts:
        row["net_change"] = row["inflows"] - row["outflows"]
        row["closing_balance"] = row["opening_balance"] + row["net_change"]

    inflows = sum((r["inflows"] for r in accounts), ZERO)
    outflows = sum((r["outflows"] for r in accounts), ZERO)
    opening_balance = sum((r["opening_balance"] for r in accounts), ZERO)

    return {
        "start": start,
        "end": end,
        "include_drafts": include_drafts,
        "accounts": accounts,
        "movements": movements,
        "opening_balance": opening_balance,
        "inflows": inflows,
        "outflows": outflows,
        "net_change": inflows - outflows,
        "closing_balance": opening_balance + inflows - outflows,
    }
