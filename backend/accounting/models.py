# accounting/models.py
"""
Accounting models for LedgerHub.

These tables are the primary state of the ledger. Mutations go through the
command layer (accounting/commands.py) and the ledger store
(accounting/store.py), which enforce the posting workflow; the models only
enforce invariants that hold regardless of workflow stage.

Models:
- CompanySequence: Per-company counters (entry numbers)
- Account: Chart of Accounts
- JournalEntry: Journal entry headers
- JournalLine: Journal entry lines
- JournalEntryAudit: Append-only trail of entry changes
"""

import uuid
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q, Sum

from accounts.models import Company, Tenant
from accounting.exceptions import InvalidStateError

ZERO = Decimal("0.00")

# Line amounts are DecimalField(max_digits=18, decimal_places=2).
AMOUNT_LIMIT = Decimal(10) ** 16


class CompanySequence(models.Model):
    """
    Per-company counters for sequential identifiers.

    Rows are locked with select_for_update when a number is allocated.
    """

    company = models.ForeignKey(
        Company,
        on_delete=models.CASCADE,
        related_name="sequences",
    )
    name = models.CharField(max_length=100)
    next_value = models.BigIntegerField(default=1)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["company", "name"],
                name="uniq_company_sequence_name",
            ),
        ]

    def __str__(self):
        return f"{self.company_id}:{self.name}={self.next_value}"


class Account(models.Model):
    """
    Chart of Accounts entry.

    Supports:
    - Hierarchical structure (parent/child, same company, no cycles)
    - Account types with normal balance rules
    - Soft status (ACTIVE/INACTIVE)
    - Cash-equivalent flag read by the cash flow report
    """

    class AccountType(models.TextChoices):
        ASSET = "ASSET", "Asset"
        LIABILITY = "LIABILITY", "Liability"
        EQUITY = "EQUITY", "Equity"
        REVENUE = "REVENUE", "Revenue"
        EXPENSE = "EXPENSE", "Expense"

    class NormalBalance(models.TextChoices):
        DEBIT = "DEBIT", "Debit"
        CREDIT = "CREDIT", "Credit"

    class Status(models.TextChoices):
        ACTIVE = "ACTIVE", "Active"
        INACTIVE = "INACTIVE", "Inactive"

    # Map account types to their normal balance
    NORMAL_BALANCE_MAP = {
        AccountType.ASSET: NormalBalance.DEBIT,
        AccountType.LIABILITY: NormalBalance.CREDIT,
        AccountType.EQUITY: NormalBalance.CREDIT,
        AccountType.REVENUE: NormalBalance.CREDIT,
        AccountType.EXPENSE: NormalBalance.DEBIT,
    }

    tenant = models.ForeignKey(
        Tenant,
        on_delete=models.CASCADE,
        related_name="accounts",
    )
    company = models.ForeignKey(
        Company,
        on_delete=models.CASCADE,
        related_name="accounts",
    )

    public_id = models.UUIDField(
        default=uuid.uuid4,
        editable=False,
        unique=True,
    )

    code = models.CharField(max_length=20)
    name = models.CharField(max_length=255)

    account_type = models.CharField(
        max_length=20,
        choices=AccountType.choices,
        db_column="type",
    )

    normal_balance = models.CharField(
        max_length=10,
        choices=NormalBalance.choices,
        editable=False,
    )

    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.ACTIVE,
    )

    parent = models.ForeignKey(
        "self",
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="children",
    )

    is_cash_equivalent = models.BooleanField(
        default=False,
        help_text="Cash and bank accounts included in the cash flow report",
    )

    description = models.TextField(blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["tenant", "company", "code"],
                name="uniq_account_code_per_company",
            )
        ]
        ordering = ["code"]
        indexes = [
            models.Index(fields=["company", "account_type"], name="account_company_type_idx"),
            models.Index(fields=["company", "status"], name="account_company_status_idx"),
        ]

    def __str__(self):
        return f"{self.code} - {self.name}"

    @property
    def is_active(self) -> bool:
        return self.status == self.Status.ACTIVE

    def clean(self):
        if self.company_id and self.tenant_id and self.company.tenant_id != self.tenant_id:
            raise ValidationError("Company does not belong to the account's tenant.")

        if not self.parent_id:
            return

        if (self.parent.company_id, self.parent.tenant_id) != (self.company_id, self.tenant_id):
            raise ValidationError({"parent": "Parent account must belong to the same company."})

        # Walk up the tree; reaching this account again means a cycle.
        current = self.parent
        while current is not None:
            if self.pk and current.pk == self.pk:
                raise ValidationError({"parent": "Account hierarchy cannot contain cycles."})
            current = current.parent

    def save(self, *args, **kwargs):
        # Auto-set normal balance from account type
        self.normal_balance = self.NORMAL_BALANCE_MAP.get(
            self.account_type,
            self.NormalBalance.DEBIT,
        )
        self.full_clean(validate_unique=False)
        super().save(*args, **kwargs)

    def has_lines(self) -> bool:
        return self.pk is not None and self.journal_lines.exists()


class JournalEntry(models.Model):
    """
    Journal Entry header.

    Workflow: DRAFT -> POSTED -> VOID
    - DRAFT: Entry is being prepared, may be unbalanced, lines editable
    - POSTED: Entry is balanced and final, affects account balances
    - VOID: Entry was cancelled after posting; kept for history, excluded
      from every balance
    """

    class Status(models.TextChoices):
        DRAFT = "DRAFT", "Draft"
        POSTED = "POSTED", "Posted"
        VOID = "VOID", "Void"

    # Allowed status transitions. Nothing leaves VOID.
    TRANSITIONS = {
        Status.DRAFT: {Status.POSTED},
        Status.POSTED: {Status.VOID},
        Status.VOID: set(),
    }

    tenant = models.ForeignKey(
        Tenant,
        on_delete=models.CASCADE,
        related_name="journal_entries",
    )
    company = models.ForeignKey(
        Company,
        on_delete=models.CASCADE,
        related_name="journal_entries",
    )

    public_id = models.UUIDField(
        default=uuid.uuid4,
        editable=False,
        unique=True,
    )

    entry_number = models.CharField(
        max_length=50,
        blank=True,
        default="",
        help_text="Sequential number allocated per company",
    )

    date = models.DateField()
    memo = models.CharField(max_length=255, blank=True, default="")
    reference = models.CharField(max_length=100, blank=True, default="")

    currency = models.CharField(
        max_length=3,
        default="USD",
        help_text="Transaction currency for this entry",
    )

    status = models.CharField(
        max_length=12,
        choices=Status.choices,
        default=Status.DRAFT,
    )

    # Source tracking (invoices, expenses, recurring, depreciation, ...)
    source_module = models.CharField(
        max_length=50,
        blank=True,
        default="manual",
        help_text="Module that created this entry (e.g., 'invoice', 'expense')",
    )
    source_document = models.CharField(
        max_length=100,
        blank=True,
        default="",
        help_text="Reference to source document (e.g., invoice number)",
    )

    # Posting metadata
    posted_at = models.DateTimeField(null=True, blank=True)
    posted_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="posted_journal_entries",
    )

    # Void metadata
    voided_at = models.DateTimeField(null=True, blank=True)
    voided_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="voided_journal_entries",
    )
    void_reason = models.TextField(blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="created_journal_entries",
    )
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["tenant", "company", "date", "id"], name="je_scope_date_idx"),
            models.Index(fields=["company", "status"], name="je_company_status_idx"),
            models.Index(fields=["company", "entry_number"], name="je_company_number_idx"),
        ]
        ordering = ["-date", "-id"]

    def __str__(self):
        num = self.entry_number or f"#{self.id}"
        return f"JE {num} ({self.date}) {self.status}"

    def save(self, *args, **kwargs):
        if self.company_id and self.tenant_id and self.company.tenant_id != self.tenant_id:
            raise ValidationError("JournalEntry company must belong to its tenant.")
        super().save(*args, **kwargs)

    def totals(self) -> tuple[Decimal, Decimal]:
        """(total debit, total credit) of the stored lines, quantized to cents."""
        agg = self.lines.aggregate(debit_total=Sum("debit"), credit_total=Sum("credit"))
        return (
            (agg["debit_total"] or ZERO).quantize(Decimal("0.01")),
            (agg["credit_total"] or ZERO).quantize(Decimal("0.01")),
        )

    @property
    def total_debit(self) -> Decimal:
        return self.totals()[0]

    @property
    def total_credit(self) -> Decimal:
        return self.totals()[1]

    @property
    def is_balanced(self) -> bool:
        total_debit, total_credit = self.totals()
        return total_debit == total_credit


class JournalLine(models.Model):
    """
    Individual line within a journal entry.
    Each line affects one account with either a debit or credit amount.

    Lines are frozen once their entry leaves DRAFT: save() and delete()
    raise InvalidStateError.
    """

    tenant = models.ForeignKey(
        Tenant,
        on_delete=models.CASCADE,
        related_name="journal_lines",
    )
    company = models.ForeignKey(
        Company,
        on_delete=models.CASCADE,
        related_name="journal_lines",
    )

    entry = models.ForeignKey(
        JournalEntry,
        on_delete=models.CASCADE,
        related_name="lines",
    )

    line_no = models.PositiveIntegerField()

    account = models.ForeignKey(
        Account,
        on_delete=models.PROTECT,
        related_name="journal_lines",
    )

    description = models.CharField(max_length=255, blank=True, default="")

    debit = models.DecimalField(max_digits=18, decimal_places=2, default=0)
    credit = models.DecimalField(max_digits=18, decimal_places=2, default=0)

    currency = models.CharField(
        max_length=3,
        blank=True,
        default="",
    )

    class Meta:
        ordering = ["entry", "line_no"]
        constraints = [
            models.UniqueConstraint(
                fields=["entry", "line_no"],
                name="uniq_line_no_per_entry",
            ),
            models.CheckConstraint(
                condition=~(Q(debit__gt=0) & Q(credit__gt=0)),
                name="chk_line_not_both_debit_credit",
            ),
            models.CheckConstraint(
                condition=~(Q(debit__exact=0) & Q(credit__exact=0)),
                name="chk_line_not_both_zero",
            ),
            models.CheckConstraint(
                condition=Q(debit__gte=0) & Q(credit__gte=0),
                name="chk_line_non_negative",
            ),
        ]
        indexes = [
            models.Index(fields=["tenant", "company", "account"], name="jl_scope_account_idx"),
        ]

    def __str__(self):
        return f"JE#{self.entry_id} L{self.line_no}"

    def _ensure_entry_is_draft(self, action: str):
        status = (
            JournalEntry.objects.filter(pk=self.entry_id)
            .values_list("status", flat=True)
            .first()
        )
        if status is not None and status != JournalEntry.Status.DRAFT:
            raise InvalidStateError(
                f"Cannot {action} lines of a {status} entry.",
                status=status,
                attempted=f"{action}_line",
            )

    def save(self, *args, **kwargs):
        self._ensure_entry_is_draft("modify")

        if (self.entry.tenant_id, self.entry.company_id) != (self.tenant_id, self.company_id):
            raise ValidationError("JournalLine scope must match entry scope.")
        if (self.account.tenant_id, self.account.company_id) != (self.tenant_id, self.company_id):
            raise ValidationError("JournalLine scope must match account scope.")

        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        self._ensure_entry_is_draft("delete")
        return super().delete(*args, **kwargs)


class JournalEntryAudit(models.Model):
    """
    Append-only audit trail for journal entries.

    Written by the ledger store in the same transaction as the change it
    records. ``old_values`` / ``new_values`` hold a fixed set of keys:
    status, line_count, total_debit, total_credit, void_reason.
    """

    class Action(models.TextChoices):
        CREATED = "CREATED", "Created"
        UPDATED = "UPDATED", "Updated"
        POSTED = "POSTED", "Posted"
        VOIDED = "VOIDED", "Voided"

    entry = models.ForeignKey(
        JournalEntry,
        on_delete=models.CASCADE,
        related_name="audit_trail",
    )
    tenant = models.ForeignKey(
        Tenant,
        on_delete=models.CASCADE,
        related_name="+",
    )
    company = models.ForeignKey(
        Company,
        on_delete=models.CASCADE,
        related_name="+",
    )
    action = models.CharField(max_length=10, choices=Action.choices)
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="+",
    )
    old_values = models.JSONField(default=dict, blank=True)
    new_values = models.JSONField(default=dict, blank=True)
    comment = models.CharField(max_length=255, blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(fields=["tenant", "company", "entry"], name="je_audit_scope_idx"),
        ]

    def __str__(self):
        return f"{self.action} JE#{self.entry_id}"
