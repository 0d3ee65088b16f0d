from django.contrib import admin
from django.urls import include, path

from ops.metrics import MetricsView

urlpatterns = [
    # Operations endpoints (no auth required)
    path("_health/", include("ops.urls")),
    path("_metrics/", MetricsView.as_view(), name="metrics"),

    # Admin and API
    path("admin/", admin.site.urls),
    path("api/auth/", include("accounts.urls")),
    path("api/accounting/", include("accounting.urls")),
    path("api/reports/", include("projections.urls")),
]
