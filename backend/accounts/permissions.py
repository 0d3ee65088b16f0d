# accounts/permissions.py
"""Role to permission-code mapping."""

ALL_PERMISSIONS = frozenset({
    "accounts.view",
    "accounts.manage",
    "journal.view",
    "journal.edit_draft",
    "journal.post",
    "journal.void",
    "reports.view",
})

ROLE_DEFAULTS = {
    "OWNER": ALL_PERMISSIONS,
    "ADMIN": frozenset({
        "accounts.view",
        "accounts.manage",
        "journal.view",
        "journal.edit_draft",
        "journal.post",
        "journal.void",
        "reports.view",
    }),
    "ACCOUNTANT": frozenset({
        "accounts.view",
        "journal.view",
        "journal.edit_draft",
        "journal.post",
        "reports.view",
    }),
    "VIEWER": frozenset({
        "accounts.view",
        "journal.view",
        "reports.view",
    }),
}


def permissions_for_role(role: str) -> frozenset:
    return ROLE_DEFAULTS.get(role, frozenset())
