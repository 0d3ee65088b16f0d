# tests/conftest.py
"""
Pytest fixtures for LedgerHub tests.

- Tenancy: two tenants, each with a company, plus a second company under
  the first tenant for cross-company checks
- Actors: ActorContext built through accounts.authz.build_actor, one per role
- Accounts: a small chart of accounts in the primary company
- make_draft / make_posted: shortcuts through the command layer
"""

from datetime import date
from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model

from accounts.authz import build_actor
from accounts.models import Company, CompanyMembership, Tenant
from accounting.commands import create_draft, post_entry
from accounting.models import Account
from ledgerhub_backend.celery import app as celery_app


User = get_user_model()


@pytest.fixture(autouse=True)
def _eager_celery():
    """Run notification tasks inline."""
    celery_app.conf.task_always_eager = True
    celery_app.conf.task_eager_propagates = True


# =============================================================================
# Tenant & Company Fixtures
# =============================================================================

@pytest.fixture
def tenant(db):
    return Tenant.objects.create(name="Acme Holdings", slug="acme")


@pytest.fixture
def company(tenant):
    """Primary test company."""
    return Company.objects.create(
        tenant=tenant,
        name="Acme Trading",
        slug="acme-trading",
        default_currency="USD",
        notification_email="books@acme.test",
    )


@pytest.fixture
def sister_company(tenant):
    """Second company under the same tenant."""
    return Company.objects.create(
        tenant=tenant,
        name="Acme Services",
        slug="acme-services",
        default_currency="USD",
    )


@pytest.fixture
def other_tenant(db):
    return Tenant.objects.create(name="Globex", slug="globex")


@pytest.fixture
def other_company(other_tenant):
    """Company under a different tenant."""
    return Company.objects.create(
        tenant=other_tenant,
        name="Globex Corp",
        slug="globex-corp",
        default_currency="USD",
    )


# =============================================================================
# Users & Memberships
# =============================================================================

def _member(company, email, role):
    user = User.objects.create_user(email=email, password="testpass123", name=email.split("@")[0])
    CompanyMembership.objects.create(user=user, company=company, role=role)
    user.active_company = company
    user.save(update_fields=["active_company"])
    return user


@pytest.fixture
def user(company):
    """Owner of the primary company."""
    return _member(company, "owner@acme.test", CompanyMembership.Role.OWNER)


@pytest.fixture
def accountant_user(company):
    return _member(company, "accountant@acme.test", CompanyMembership.Role.ACCOUNTANT)


@pytest.fixture
def viewer_user(company):
    return _member(company, "viewer@acme.test", CompanyMembership.Role.VIEWER)


@pytest.fixture
def other_user(other_company):
    """Owner of the company under the other tenant."""
    return _member(other_company, "owner@globex.test", CompanyMembership.Role.OWNER)


@pytest.fixture
def actor_context(user, company):
    return build_actor(user, company)


@pytest.fixture
def accountant_actor(accountant_user, company):
    return build_actor(accountant_user, company)


@pytest.fixture
def viewer_actor(viewer_user, company):
    return build_actor(viewer_user, company)


@pytest.fixture
def other_actor(other_user, other_company):
    return build_actor(other_user, other_company)


# =============================================================================
# Chart of Accounts
# =============================================================================

def _account(company, code, name, account_type, **extra):
    return Account.objects.create(
        tenant_id=company.tenant_id,
        company=company,
        code=code,
        name=name,
        account_type=account_type,
        **extra,
    )


@pytest.fixture
def cash_account(company):
    return _account(company, "1000", "Cash", Account.AccountType.ASSET, is_cash_equivalent=True)


@pytest.fixture
def bank_account(company):
    return _account(company, "1010", "Bank", Account.AccountType.ASSET, is_cash_equivalent=True)


@pytest.fixture
def receivable_account(company):
    return _account(company, "1200", "Accounts Receivable", Account.AccountType.ASSET)


@pytest.fixture
def revenue_account(company):
    return _account(company, "4000", "Sales Revenue", Account.AccountType.REVENUE)


@pytest.fixture
def expense_account(company):
    return _account(company, "5000", "Rent Expense", Account.AccountType.EXPENSE)


@pytest.fixture
def foreign_account(other_company):
    """Account owned by the other tenant's company."""
    return _account(other_company, "1000", "Globex Cash", Account.AccountType.ASSET)


@pytest.fixture
def sister_account(sister_company):
    """Account in another company of the same tenant."""
    return _account(sister_company, "1000", "Services Cash", Account.AccountType.ASSET)


# =============================================================================
# Entry helpers
# =============================================================================

def lines_for(debit_account, credit_account, amount):
    """Two balanced lines moving ``amount`` from credit to debit account."""
    amount = str(Decimal(amount))
    return [
        {"account_id": debit_account.id, "debit": amount, "credit": "0"},
        {"account_id": credit_account.id, "debit": "0", "credit": amount},
    ]


@pytest.fixture
def make_draft(actor_context):
    def _make(debit_account, credit_account, amount="100.00", entry_date=None, memo="Test entry"):
        return create_draft(
            actor_context,
            date=entry_date or date(2024, 1, 15),
            lines=lines_for(debit_account, credit_account, amount),
            memo=memo,
        )
    return _make


@pytest.fixture
def make_posted(actor_context, make_draft):
    def _make(*args, **kwargs):
        entry = make_draft(*args, **kwargs)
        return post_entry(actor_context, entry.id)
    return _make
