# projections/urls.py
"""
URL configuration for the reports API.

Endpoints:
- /reports/general-ledger/ - General ledger with running balances
- /reports/trial-balance/ - Trial balance
- /reports/cash-flow/ - Cash flow on cash-equivalent accounts
"""

from django.urls import path

from .views import CashFlowView, GeneralLedgerView, TrialBalanceView

app_name = "projections"

urlpatterns = [
    path(
        "general-ledger/",
        GeneralLedgerView.as_view(),
        name="general-ledger",
    ),
    path(
        "trial-balance/",
        TrialBalanceView.as_view(),
        name="trial-balance",
    ),
    path(
        "cash-flow/",
        CashFlowView.as_view(),
        name="cash-flow",
    ),
]
