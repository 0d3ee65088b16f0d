# accounting/policies.py
"""
Business policy functions for accounting operations.

Policies answer: "Is this action allowed given the current state?"
They do NOT perform the action; that's the command's job.

Workflow rules (status transitions, line immutability after posting)
are enforced here and in the commands. Models only enforce invariants
that hold at every stage.

Usage:
    from accounting.policies import can_post_entry

    allowed, reason = can_post_entry(actor, entry)
    if not allowed:
        raise InvalidStateError(reason, status=entry.status, attempted="post")

Policies are pure functions returning (bool, str) tuples.
"""

from accounting.models import Account, JournalEntry


# =============================================================================
# Tenant Boundary Policies
# =============================================================================

def check_tenant_boundary(actor, entity) -> bool:
    """
    Verify entity belongs to actor's tenant and company.
    This is the fundamental multi-tenant security check.
    """
    return (
        getattr(entity, "tenant_id", None) == actor.tenant.id
        and getattr(entity, "company_id", None) == actor.company.id
    )


# =============================================================================
# Account Policies
# =============================================================================

def can_delete_account(actor, account) -> tuple[bool, str]:
    """
    Rules:
    - Must belong to actor's company
    - Cannot have journal lines (deactivate it instead)
    - Cannot have child accounts
    """
    if not check_tenant_boundary(actor, account):
        return False, "Cross-company action denied."

    if account.journal_lines.exists():
        return False, "Cannot delete an account that has transactions. Deactivate it instead."

    if account.children.exists():
        return False, "Cannot delete an account that has child accounts."

    return True, ""


def can_change_account_type(actor, account) -> tuple[bool, str]:
    """The type of an account is fixed once any journal line references it."""
    if not check_tenant_boundary(actor, account):
        return False, "Cross-company action denied."

    if account.has_lines():
        return False, "Cannot change type of an account with transactions."

    return True, ""


def can_post_to_account(account) -> tuple[bool, str]:
    if account.status != Account.Status.ACTIVE:
        return False, f"Account {account.code} is inactive."
    return True, ""


# =============================================================================
# Journal Entry Policies
# =============================================================================

def can_transition(from_status, to_status) -> bool:
    """Single source of truth for the DRAFT -> POSTED -> VOID state machine."""
    return to_status in JournalEntry.TRANSITIONS.get(from_status, set())


def can_edit_entry(actor, entry) -> tuple[bool, str]:
    if not check_tenant_boundary(actor, entry):
        return False, "Cross-company action denied."

    if entry.status != JournalEntry.Status.DRAFT:
        return False, f"Cannot edit a {entry.status} entry. Only drafts can be edited."

    return True, ""


def can_delete_entry(actor, entry) -> tuple[bool, str]:
    if not check_tenant_boundary(actor, entry):
        return False, "Cross-company action denied."

    if entry.status != JournalEntry.Status.DRAFT:
        return False, f"Cannot delete a {entry.status} entry. Void it instead."

    return True, ""


def can_post_entry(actor, entry) -> tuple[bool, str]:
    if not check_tenant_boundary(actor, entry):
        return False, "Cross-company action denied."

    if not can_transition(entry.status, JournalEntry.Status.POSTED):
        return False, f"Cannot post a {entry.status} entry. Only drafts can be posted."

    return True, ""


def can_void_entry(actor, entry) -> tuple[bool, str]:
    if not check_tenant_boundary(actor, entry):
        return False, "Cross-company action denied."

    if not can_transition(entry.status, JournalEntry.Status.VOID):
        return False, f"Cannot void a {entry.status} entry. Only posted entries can be voided."

    return True, ""
