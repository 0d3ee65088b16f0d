# accounting/urls.py
"""
URL configuration for accounting API.

Endpoints:
- /accounts/ - Chart of Accounts CRUD
- /journal-entries/ - Journal Entry CRUD with workflow actions
- /journal-entries/summary/ - Entry counts per status
"""

from django.urls import path

from .views import (
    AccountDetailView,
    AccountListCreateView,
    JournalEntryAuditView,
    JournalEntryDetailView,
    JournalEntryListCreateView,
    JournalEntrySummaryView,
    JournalPostView,
    JournalVoidView,
)

app_name = "accounting"

urlpatterns = [
    # ==========================================================================
    # Accounts (Chart of Accounts)
    # ==========================================================================
    path(
        "accounts/",
        AccountListCreateView.as_view(),
        name="account-list-create",
    ),
    path(
        "accounts/<str:code>/",
        AccountDetailView.as_view(),
        name="account-detail",
    ),

    # ==========================================================================
    # Journal Entries
    # ==========================================================================
    path(
        "journal-entries/",
        JournalEntryListCreateView.as_view(),
        name="journal-entry-list-create",
    ),
    path(
        "journal-entries/summary/",
        JournalEntrySummaryView.as_view(),
        name="journal-entry-summary",
    ),
    path(
        "journal-entries/<int:pk>/",
        JournalEntryDetailView.as_view(),
        name="journal-entry-detail",
    ),
    path(
        "journal-entries/<int:pk>/post/",
        JournalPostView.as_view(),
        name="journal-entry-post",
    ),
    path(
        "journal-entries/<int:pk>/void/",
        JournalVoidView.as_view(),
        name="journal-entry-void",
    ),
    path(
        "journal-entries/<int:pk>/audit/",
        JournalEntryAuditView.as_view(),
        name="journal-entry-audit",
    ),
]
