# tests/test_accounting.py
"""
Tests for the posting engine and account registry.

Tests cover:
- Draft creation and input validation (every problem reported at once)
- Tenant/company boundaries on line accounts
- Posting: balance check, status machine, concurrent posting
- Voiding: mandatory reason, terminal status
- Immutability of posted lines
- Account registry rules
- Post-commit notifications
"""

import smtplib
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from decimal import Decimal
from threading import Barrier
from unittest import mock

import pytest
from django.core import mail
from django.core.exceptions import PermissionDenied
from django.db import connection

from accounting.commands import (
    create_account,
    create_draft,
    delete_account,
    delete_draft,
    post_entry,
    update_account,
    update_draft,
    void_entry,
)
from accounting.exceptions import (
    InvalidStateError,
    NotFoundError,
    ScopeError,
    UnbalancedEntryError,
    ValidationError,
)
from accounting.models import Account, JournalEntry, JournalEntryAudit
from accounting.notifications import send_entry_status_email


def _audit_actions(entry):
    return list(
        JournalEntryAudit.objects.filter(entry=entry)
        .order_by("id")
        .values_list("action", flat=True)
    )


# =============================================================================
# Draft Creation
# =============================================================================

@pytest.mark.django_db
class TestCreateDraft:

    def test_creates_draft_with_numbered_lines(self, actor_context, cash_account, revenue_account):
        entry = create_draft(
            actor_context,
            date="2024-03-01",
            memo="Cash sale",
            lines=[
                {"account_id": cash_account.id, "debit": "250.00", "credit": "0"},
                {"account_id": revenue_account.id, "debit": "0", "credit": "250.00"},
            ],
        )

        assert entry.status == JournalEntry.Status.DRAFT
        assert entry.date == date(2024, 3, 1)
        assert entry.entry_number == "JE-000001"
        assert entry.currency == "USD"
        lines = list(entry.lines.order_by("line_no"))
        assert [line.line_no for line in lines] == [1, 2]
        assert lines[0].debit == Decimal("250.00")
        assert lines[1].credit == Decimal("250.00")
        assert all(line.tenant_id == actor_context.tenant.id for line in lines)
        assert _audit_actions(entry) == [JournalEntryAudit.Action.CREATED]

    def test_drafts_may_be_unbalanced(self, actor_context, cash_account, revenue_account):
        entry = create_draft(
            actor_context,
            date=date(2024, 3, 1),
            lines=[
                {"account_id": cash_account.id, "debit": "100.00"},
                {"account_id": revenue_account.id, "credit": "40.00"},
            ],
        )

        assert entry.is_balanced is False
        assert entry.totals() == (Decimal("100.00"), Decimal("40.00"))

    def test_collects_every_error(self, actor_context, cash_account):
        with pytest.raises(ValidationError) as exc_info:
            create_draft(
                actor_context,
                date="not-a-date",
                lines=[
                    {"debit": "10.00"},
                    {"account_id": cash_account.id, "debit": "-5.00"},
                    {"account_id": 999999, "credit": "5.00"},
                ],
            )

        errors = exc_info.value.errors
        assert "date" in errors
        assert "lines[0].account_id" in errors
        assert "lines[1].debit" in errors
        assert "lines[2].account_id" in errors
        assert JournalEntry.objects.count() == 0

    def test_missing_date_and_lines(self, actor_context):
        with pytest.raises(ValidationError) as exc_info:
            create_draft(actor_context, date=None, lines=[])

        assert set(exc_info.value.errors) == {"date", "lines"}

    def test_zero_line_rejected(self, actor_context, cash_account, revenue_account):
        with pytest.raises(ValidationError) as exc_info:
            create_draft(
                actor_context,
                date="2024-03-01",
                lines=[
                    {"account_id": cash_account.id, "debit": "0", "credit": "0"},
                    {"account_id": revenue_account.id, "credit": "10.00"},
                ],
            )

        assert "lines[0]" in exc_info.value.errors

    def test_two_sided_line_rejected(self, actor_context, cash_account):
        with pytest.raises(ValidationError) as exc_info:
            create_draft(
                actor_context,
                date="2024-03-01",
                lines=[{"account_id": cash_account.id, "debit": "10.00", "credit": "10.00"}],
            )

        assert "lines[0]" in exc_info.value.errors

    def test_more_than_two_decimals_rejected(self, actor_context, cash_account):
        with pytest.raises(ValidationError) as exc_info:
            create_draft(
                actor_context,
                date="2024-03-01",
                lines=[{"account_id": cash_account.id, "debit": "10.005"}],
            )

        assert "lines[0].debit" in exc_info.value.errors

    @pytest.mark.parametrize("amount", ["1e30", "12345678901234567.89", "10000000000000000"])
    def test_amount_wider_than_column_rejected(self, actor_context, cash_account, revenue_account, amount):
        with pytest.raises(ValidationError) as exc_info:
            create_draft(
                actor_context,
                date="2024-03-01",
                lines=[
                    {"account_id": cash_account.id, "debit": amount},
                    {"account_id": revenue_account.id, "credit": amount},
                ],
            )

        errors = exc_info.value.errors
        assert "lines[0].debit" in errors
        assert "lines[1].credit" in errors
        assert JournalEntry.objects.count() == 0

    def test_exponent_notation_within_range_accepted(self, actor_context, cash_account, revenue_account):
        entry = create_draft(
            actor_context,
            date="2024-03-01",
            lines=[
                {"account_id": cash_account.id, "debit": "1.5e2"},
                {"account_id": revenue_account.id, "credit": "150"},
            ],
        )

        assert entry.totals() == (Decimal("150.00"), Decimal("150.00"))

    def test_line_currency_must_match_entry(self, actor_context, cash_account):
        with pytest.raises(ValidationError) as exc_info:
            create_draft(
                actor_context,
                date="2024-03-01",
                lines=[{"account_id": cash_account.id, "debit": "10.00", "currency": "EUR"}],
            )

        assert "lines[0].currency" in exc_info.value.errors

    def test_account_code_resolved_in_own_company(
        self, actor_context, cash_account, revenue_account, foreign_account
    ):
        # foreign_account shares code 1000 with cash_account
        entry = create_draft(
            actor_context,
            date="2024-03-01",
            lines=[
                {"account_code": "1000", "debit": "10.00"},
                {"account_code": "4000", "credit": "10.00"},
            ],
        )

        assert entry.lines.get(line_no=1).account_id == cash_account.id

    def test_foreign_tenant_account_raises_scope_error(
        self, actor_context, revenue_account, foreign_account
    ):
        with pytest.raises(ScopeError):
            create_draft(
                actor_context,
                date="2024-03-01",
                lines=[
                    {"account_id": foreign_account.id, "debit": "10.00"},
                    {"account_id": revenue_account.id, "credit": "10.00"},
                ],
            )

        assert JournalEntry.objects.count() == 0

    def test_sister_company_account_raises_scope_error(
        self, actor_context, revenue_account, sister_account
    ):
        with pytest.raises(ScopeError):
            create_draft(
                actor_context,
                date="2024-03-01",
                lines=[
                    {"account_id": sister_account.id, "debit": "10.00"},
                    {"account_id": revenue_account.id, "credit": "10.00"},
                ],
            )

    def test_viewer_cannot_create(self, viewer_actor, cash_account, revenue_account):
        with pytest.raises(PermissionDenied):
            create_draft(
                viewer_actor,
                date="2024-03-01",
                lines=[
                    {"account_id": cash_account.id, "debit": "10.00"},
                    {"account_id": revenue_account.id, "credit": "10.00"},
                ],
            )

    def test_entry_numbers_are_per_company(
        self, make_draft, other_actor, cash_account, revenue_account, other_company
    ):
        first = make_draft(cash_account, revenue_account)
        second = make_draft(cash_account, revenue_account)

        other_cash = Account.objects.create(
            tenant=other_company.tenant, company=other_company,
            code="1000", name="Cash", account_type=Account.AccountType.ASSET,
        )
        other_revenue = Account.objects.create(
            tenant=other_company.tenant, company=other_company,
            code="4000", name="Revenue", account_type=Account.AccountType.REVENUE,
        )
        other = create_draft(
            other_actor,
            date="2024-03-01",
            lines=[
                {"account_id": other_cash.id, "debit": "5.00"},
                {"account_id": other_revenue.id, "credit": "5.00"},
            ],
        )

        assert (first.entry_number, second.entry_number) == ("JE-000001", "JE-000002")
        assert other.entry_number == "JE-000001"


# =============================================================================
# Draft Editing
# =============================================================================

@pytest.mark.django_db
class TestDraftEditing:

    def test_update_replaces_lines(self, actor_context, make_draft, cash_account, revenue_account, expense_account):
        entry = make_draft(cash_account, revenue_account, "100.00")

        entry = update_draft(
            actor_context,
            entry.id,
            memo="Corrected",
            lines=[
                {"account_id": expense_account.id, "debit": "60.00"},
                {"account_id": cash_account.id, "credit": "60.00"},
            ],
        )

        assert entry.memo == "Corrected"
        assert entry.lines.count() == 2
        assert entry.totals() == (Decimal("60.00"), Decimal("60.00"))
        assert _audit_actions(entry) == [
            JournalEntryAudit.Action.CREATED,
            JournalEntryAudit.Action.UPDATED,
        ]

    def test_delete_draft(self, actor_context, make_draft, cash_account, revenue_account):
        entry = make_draft(cash_account, revenue_account)

        delete_draft(actor_context, entry.id)

        assert not JournalEntry.objects.filter(pk=entry.pk).exists()

    def test_posted_entry_cannot_be_updated(self, actor_context, make_posted, cash_account, revenue_account):
        entry = make_posted(cash_account, revenue_account)

        with pytest.raises(InvalidStateError):
            update_draft(actor_context, entry.id, memo="Sneaky edit")

    def test_posted_entry_cannot_be_deleted(self, actor_context, make_posted, cash_account, revenue_account):
        entry = make_posted(cash_account, revenue_account)

        with pytest.raises(InvalidStateError):
            delete_draft(actor_context, entry.id)

        assert JournalEntry.objects.filter(pk=entry.pk).exists()

    def test_posted_lines_are_immutable(self, make_posted, cash_account, revenue_account):
        entry = make_posted(cash_account, revenue_account)
        line = entry.lines.get(line_no=1)

        line.debit = Decimal("999.00")
        with pytest.raises(InvalidStateError):
            line.save()
        with pytest.raises(InvalidStateError):
            line.delete()

        line.refresh_from_db()
        assert line.debit == Decimal("100.00")


# =============================================================================
# Posting
# =============================================================================

@pytest.mark.django_db
class TestPostEntry:

    def test_post_balanced_entry(self, actor_context, make_draft, cash_account, revenue_account):
        entry = make_draft(cash_account, revenue_account, "100.00")

        posted = post_entry(actor_context, entry.id)

        assert posted.status == JournalEntry.Status.POSTED
        assert posted.posted_at is not None
        assert posted.posted_by_id == actor_context.user.id
        assert _audit_actions(posted) == [
            JournalEntryAudit.Action.CREATED,
            JournalEntryAudit.Action.POSTED,
        ]
        audit = posted.audit_trail.get(action=JournalEntryAudit.Action.POSTED)
        assert audit.old_values["status"] == "DRAFT"
        assert audit.new_values["status"] == "POSTED"
        assert audit.new_values["total_debit"] == "100.00"

    def test_unbalanced_entry_is_rejected(self, actor_context, cash_account, revenue_account):
        entry = create_draft(
            actor_context,
            date="2024-03-01",
            lines=[
                {"account_id": cash_account.id, "debit": "100.00"},
                {"account_id": revenue_account.id, "credit": "90.00"},
            ],
        )

        with pytest.raises(UnbalancedEntryError) as exc_info:
            post_entry(actor_context, entry.id)

        assert exc_info.value.total_debit == Decimal("100.00")
        assert exc_info.value.total_credit == Decimal("90.00")
        entry.refresh_from_db()
        assert entry.status == JournalEntry.Status.DRAFT

    def test_post_twice_is_invalid_state(self, actor_context, make_draft, cash_account, revenue_account):
        entry = make_draft(cash_account, revenue_account)
        post_entry(actor_context, entry.id)

        with pytest.raises(InvalidStateError) as exc_info:
            post_entry(actor_context, entry.id)

        assert exc_info.value.status == JournalEntry.Status.POSTED
        assert _audit_actions(entry).count(JournalEntryAudit.Action.POSTED) == 1

    def test_lost_status_race_is_invalid_state(self, actor_context, make_draft, cash_account, revenue_account):
        entry = make_draft(cash_account, revenue_account)

        with mock.patch("accounting.store.transition_status", return_value=False):
            with pytest.raises(InvalidStateError, match="concurrent"):
                post_entry(actor_context, entry.id)

        entry.refresh_from_db()
        assert entry.status == JournalEntry.Status.DRAFT
        assert JournalEntryAudit.Action.POSTED not in _audit_actions(entry)

    def test_stale_draft_loses_to_committed_post(self, actor_context, make_draft, cash_account, revenue_account):
        entry = make_draft(cash_account, revenue_account)
        stale = JournalEntry.objects.get(pk=entry.pk)
        JournalEntry.objects.filter(pk=entry.pk).update(status=JournalEntry.Status.POSTED)

        # The lock returns a copy read before the other post committed.
        with mock.patch("accounting.store.find_by_id", return_value=stale):
            with pytest.raises(InvalidStateError, match="concurrent") as exc_info:
                post_entry(actor_context, entry.id)

        assert exc_info.value.status == JournalEntry.Status.POSTED
        entry.refresh_from_db()
        assert entry.status == JournalEntry.Status.POSTED
        assert entry.posted_by_id is None
        assert JournalEntryAudit.Action.POSTED not in _audit_actions(entry)

    def test_inactive_account_blocks_posting(self, actor_context, make_draft, cash_account, revenue_account):
        entry = make_draft(cash_account, revenue_account)
        cash_account.status = Account.Status.INACTIVE
        cash_account.save()

        with pytest.raises(ValidationError) as exc_info:
            post_entry(actor_context, entry.id)

        assert "lines[0].account_id" in exc_info.value.errors

    def test_unknown_entry_not_found(self, actor_context):
        with pytest.raises(NotFoundError):
            post_entry(actor_context, 999999)

    def test_entry_of_other_tenant_not_found(self, other_actor, make_draft, cash_account, revenue_account):
        entry = make_draft(cash_account, revenue_account)

        with pytest.raises(NotFoundError):
            post_entry(other_actor, entry.id)

        entry.refresh_from_db()
        assert entry.status == JournalEntry.Status.DRAFT

    def test_viewer_cannot_post(self, viewer_actor, make_draft, cash_account, revenue_account):
        entry = make_draft(cash_account, revenue_account)

        with pytest.raises(PermissionDenied):
            post_entry(viewer_actor, entry.id)

    def test_accountant_can_post(self, accountant_actor, make_draft, cash_account, revenue_account):
        entry = make_draft(cash_account, revenue_account)

        assert post_entry(accountant_actor, entry.id).status == JournalEntry.Status.POSTED


@pytest.mark.skipif(connection.vendor == "sqlite", reason="Row locks need a server database")
@pytest.mark.django_db(transaction=True)
def test_concurrent_posts_have_one_winner(actor_context, make_draft, cash_account, revenue_account):
    entry = make_draft(cash_account, revenue_account)
    barrier = Barrier(2)

    def attempt():
        barrier.wait()
        try:
            post_entry(actor_context, entry.id)
            return "posted"
        except InvalidStateError:
            return "rejected"
        finally:
            connection.close()

    with ThreadPoolExecutor(max_workers=2) as pool:
        results = sorted(pool.map(lambda _: attempt(), range(2)))

    assert results == ["posted", "rejected"]
    assert _audit_actions(entry).count(JournalEntryAudit.Action.POSTED) == 1


# =============================================================================
# Voiding
# =============================================================================

@pytest.mark.django_db
class TestVoidEntry:

    def test_void_posted_entry(self, actor_context, make_posted, cash_account, revenue_account):
        entry = make_posted(cash_account, revenue_account)

        voided = void_entry(actor_context, entry.id, "Duplicate of JE-000002")

        assert voided.status == JournalEntry.Status.VOID
        assert voided.void_reason == "Duplicate of JE-000002"
        assert voided.voided_by_id == actor_context.user.id
        assert voided.voided_at is not None
        # Lines are kept for history
        assert voided.lines.count() == 2
        audit = voided.audit_trail.get(action=JournalEntryAudit.Action.VOIDED)
        assert audit.comment == "Duplicate of JE-000002"

    def test_reason_is_required(self, actor_context, make_posted, cash_account, revenue_account):
        entry = make_posted(cash_account, revenue_account)

        with pytest.raises(ValidationError) as exc_info:
            void_entry(actor_context, entry.id, "   ")

        assert "reason" in exc_info.value.errors
        entry.refresh_from_db()
        assert entry.status == JournalEntry.Status.POSTED

    def test_draft_cannot_be_voided(self, actor_context, make_draft, cash_account, revenue_account):
        entry = make_draft(cash_account, revenue_account)

        with pytest.raises(InvalidStateError):
            void_entry(actor_context, entry.id, "Mistake")

    def test_void_is_terminal(self, actor_context, make_posted, cash_account, revenue_account):
        entry = make_posted(cash_account, revenue_account)
        void_entry(actor_context, entry.id, "Mistake")

        with pytest.raises(InvalidStateError):
            void_entry(actor_context, entry.id, "Again")
        with pytest.raises(InvalidStateError):
            post_entry(actor_context, entry.id)

    def test_accountant_cannot_void(self, accountant_actor, make_posted, cash_account, revenue_account):
        entry = make_posted(cash_account, revenue_account)

        with pytest.raises(PermissionDenied):
            void_entry(accountant_actor, entry.id, "Mistake")


# =============================================================================
# Account Registry
# =============================================================================

@pytest.mark.django_db
class TestAccounts:

    def test_create_sets_normal_balance(self, actor_context):
        account = create_account(actor_context, code="2000", name="Payables", account_type="LIABILITY")

        assert account.normal_balance == Account.NormalBalance.CREDIT
        assert account.tenant_id == actor_context.tenant.id
        assert account.status == Account.Status.ACTIVE

    def test_duplicate_code_rejected(self, actor_context, cash_account):
        with pytest.raises(ValidationError) as exc_info:
            create_account(actor_context, code="1000", name="Petty Cash", account_type="ASSET")

        assert "code" in exc_info.value.errors

    def test_same_code_allowed_in_other_company(self, actor_context, foreign_account):
        account = create_account(actor_context, code="1000", name="Cash", account_type="ASSET")

        assert account.code == foreign_account.code

    def test_invalid_type_rejected(self, actor_context):
        with pytest.raises(ValidationError) as exc_info:
            create_account(actor_context, code="9000", name="Odd", account_type="GOODWILL")

        assert "account_type" in exc_info.value.errors

    def test_viewer_cannot_create(self, viewer_actor):
        with pytest.raises(PermissionDenied):
            create_account(viewer_actor, code="9000", name="Odd", account_type="ASSET")

    def test_type_change_allowed_before_use(self, actor_context, revenue_account):
        account = update_account(actor_context, revenue_account.id, account_type="EXPENSE")

        assert account.account_type == Account.AccountType.EXPENSE
        assert account.normal_balance == Account.NormalBalance.DEBIT

    def test_type_change_blocked_after_use(self, actor_context, make_draft, cash_account, revenue_account):
        make_draft(cash_account, revenue_account)

        with pytest.raises(ValidationError) as exc_info:
            update_account(actor_context, revenue_account.id, account_type="EXPENSE")

        assert "account_type" in exc_info.value.errors

    def test_foreign_parent_is_scope_error(self, actor_context, foreign_account):
        with pytest.raises(ScopeError):
            create_account(
                actor_context, code="1100", name="Sub", account_type="ASSET",
                parent_id=foreign_account.id,
            )

    def test_hierarchy_cycle_rejected(self, actor_context, cash_account):
        child = create_account(
            actor_context, code="1001", name="Till", account_type="ASSET", parent_id=cash_account.id,
        )

        with pytest.raises(ValidationError) as exc_info:
            update_account(actor_context, cash_account.id, parent_id=child.id)

        assert "parent" in exc_info.value.errors

    def test_delete_unused_account(self, actor_context, expense_account):
        delete_account(actor_context, expense_account.id)

        assert not Account.objects.filter(pk=expense_account.pk).exists()

    def test_delete_used_account_blocked(self, actor_context, make_draft, cash_account, revenue_account):
        make_draft(cash_account, revenue_account)

        with pytest.raises(InvalidStateError):
            delete_account(actor_context, cash_account.id)

    def test_unknown_field_rejected(self, actor_context, cash_account):
        with pytest.raises(ValidationError) as exc_info:
            update_account(actor_context, cash_account.id, normal_balance="CREDIT")

        assert "normal_balance" in exc_info.value.errors


# =============================================================================
# Notifications
# =============================================================================

@pytest.mark.django_db
class TestNotifications:

    @pytest.fixture(autouse=True)
    def _enabled(self, settings):
        settings.LEDGER_NOTIFICATIONS_ENABLED = True

    def test_post_sends_email_after_commit(
        self, actor_context, make_draft, cash_account, revenue_account, django_capture_on_commit_callbacks
    ):
        entry = make_draft(cash_account, revenue_account)

        with django_capture_on_commit_callbacks(execute=True) as callbacks:
            post_entry(actor_context, entry.id)

        assert len(callbacks) == 1
        assert len(mail.outbox) == 1
        message = mail.outbox[0]
        assert message.to == ["books@acme.test"]
        assert entry.entry_number in message.subject
        assert "posted" in message.subject

    def test_void_email_includes_reason(
        self, actor_context, make_posted, cash_account, revenue_account, django_capture_on_commit_callbacks
    ):
        entry = make_posted(cash_account, revenue_account)

        with django_capture_on_commit_callbacks(execute=True):
            void_entry(actor_context, entry.id, "Entered twice")

        assert len(mail.outbox) == 1
        assert "Reason: Entered twice" in mail.outbox[0].body

    def test_failed_post_schedules_nothing(
        self, actor_context, cash_account, revenue_account, django_capture_on_commit_callbacks
    ):
        entry = create_draft(
            actor_context,
            date="2024-03-01",
            lines=[
                {"account_id": cash_account.id, "debit": "10.00"},
                {"account_id": revenue_account.id, "credit": "5.00"},
            ],
        )

        with django_capture_on_commit_callbacks(execute=True) as callbacks:
            with pytest.raises(UnbalancedEntryError):
                post_entry(actor_context, entry.id)

        assert callbacks == []
        assert mail.outbox == []

    def test_disabled_notifications(
        self, settings, actor_context, make_draft, cash_account, revenue_account,
        django_capture_on_commit_callbacks,
    ):
        settings.LEDGER_NOTIFICATIONS_ENABLED = False
        entry = make_draft(cash_account, revenue_account)

        with django_capture_on_commit_callbacks(execute=True) as callbacks:
            post_entry(actor_context, entry.id)

        assert callbacks == []

    def test_company_without_address_is_skipped(self, company, make_posted, cash_account, revenue_account):
        company.notification_email = ""
        company.save()
        entry = make_posted(cash_account, revenue_account)

        assert send_entry_status_email(entry, "posted") is False
        assert mail.outbox == []

    def test_delivery_failure_is_logged(self, make_posted, cash_account, revenue_account, caplog):
        entry = make_posted(cash_account, revenue_account)

        with mock.patch(
            "accounting.notifications.send_mail",
            side_effect=smtplib.SMTPException("relay down"),
        ):
            assert send_entry_status_email(entry, "posted") is False

        assert "Failed to send posted notification" in caplog.text
