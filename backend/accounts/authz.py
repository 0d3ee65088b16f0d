# accounts/authz.py
"""
Authorization utilities for LedgerHub.

Provides:
- LedgerScope: Immutable (tenant_id, company_id) pair
- ActorContext: Immutable context for the current request
- resolve_actor: Extract actor context from request
- require: Check permissions and raise if not granted

Scope is never inferred from ambient state: every ledger command receives an
ActorContext and every store/projection call receives a LedgerScope.
"""

import logging
from dataclasses import dataclass
from typing import FrozenSet

from django.core.exceptions import PermissionDenied
from rest_framework.exceptions import NotAuthenticated

from accounting.exceptions import ScopeError
from accounts.models import CompanyMembership, Company, Tenant
from accounts.permissions import permissions_for_role

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerScope:
    """The tenant/company pair every ledger read and write is confined to."""
    tenant_id: int
    company_id: int

    def __post_init__(self):
        if self.tenant_id is None or self.company_id is None:
            raise ScopeError(
                "Tenant and company are both required.",
                details={"tenant_id": self.tenant_id, "company_id": self.company_id},
            )

    @classmethod
    def for_company(cls, company: Company) -> "LedgerScope":
        return cls(tenant_id=company.tenant_id, company_id=company.id)


@dataclass(frozen=True)
class ActorContext:
    """
    Immutable context for the current actor (user + tenant + company).

    Attributes:
        user: The authenticated user
        tenant: The tenant owning the company
        company: The active company
        membership: The user's membership in the company
        perms: Permission codes granted by the membership role
    """
    user: object  # User model
    tenant: Tenant
    company: Company
    membership: CompanyMembership
    perms: FrozenSet[str]

    def has(self, code: str) -> bool:
        if not self.membership.is_active:
            return False
        if self.is_owner:
            return True
        return code in self.perms

    @property
    def is_owner(self) -> bool:
        return self.membership.role == CompanyMembership.Role.OWNER

    @property
    def role(self) -> str:
        return self.membership.role

    @property
    def scope(self) -> LedgerScope:
        return LedgerScope(tenant_id=self.tenant.id, company_id=self.company.id)


def build_actor(user, company: Company) -> ActorContext:
    """
    Build an ActorContext for ``user`` acting inside ``company``.

    Raises:
        ScopeError: If the company has no tenant or the tenant is inactive
        PermissionDenied: If the user has no active membership in the company
    """
    tenant = company.tenant if company.tenant_id else None
    if tenant is None or not tenant.is_active or not company.is_active:
        logger.warning(
            "Rejected actor outside an active tenant",
            extra={"user_id": getattr(user, "id", None), "company_id": company.id,
                   "tenant_id": company.tenant_id},
        )
        raise ScopeError(
            "The selected company is not part of an active tenant.",
            details={"company_id": company.id},
        )

    # Fresh membership lookup EVERY request (not cached)
    try:
        membership = CompanyMembership.objects.select_related("company").get(
            user=user,
            company=company,
            is_active=True,
        )
    except CompanyMembership.DoesNotExist:
        raise PermissionDenied("You are not an active member of the selected company.")

    return ActorContext(
        user=user,
        tenant=tenant,
        company=company,
        membership=membership,
        perms=permissions_for_role(membership.role),
    )


def resolve_actor(request) -> ActorContext:
    """
    Extract ActorContext from the current request.

    This is called at the start of every view that needs authorization.

    Raises:
        NotAuthenticated: If user is not authenticated
        PermissionDenied: If user has no active company or membership
        ScopeError: If the active company has no active tenant
    """
    user = getattr(request, "user", None)

    if not user or not user.is_authenticated:
        raise NotAuthenticated("Authentication required.")

    company = getattr(user, "active_company", None)

    if not company:
        raise PermissionDenied("No active company selected. Please select a company first.")

    return build_actor(user, company)


def require(actor: ActorContext, code: str) -> None:
    """
    Require that the actor has a specific permission.

    Example:
        require(actor, "journal.post")
        # If we get here, permission is granted
    """
    if not actor.has(code):
        raise PermissionDenied(f"Permission denied: {code}")
