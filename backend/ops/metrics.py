"""
Prometheus metrics endpoint.

Exposes application metrics in Prometheus format for scraping.

Metrics exposed:
- ledgerhub_journal_transitions_total: Entries posted/voided
- ledgerhub_ledger_errors_total: Ledger errors returned by the API, by code
- ledgerhub_journal_entries: Stored entries by status (collected on scrape)
- ledgerhub_request_duration_seconds: HTTP request duration histogram
"""
import logging
import re
import time

from django.db import DatabaseError
from django.db.models import Count
from django.http import HttpResponse
from django.views import View
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest

logger = logging.getLogger(__name__)

journal_transitions = Counter(
    "ledgerhub_journal_transitions_total",
    "Journal entry status transitions",
    ["transition"],
)

ledger_errors = Counter(
    "ledgerhub_ledger_errors_total",
    "Ledger errors returned to API clients",
    ["code"],
)

journal_entries = Gauge(
    "ledgerhub_journal_entries",
    "Stored journal entries",
    ["status"],
)

request_duration = Histogram(
    "ledgerhub_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint", "status"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

active_requests = Gauge(
    "ledgerhub_active_requests",
    "Number of requests currently being processed",
)


def record_transition(transition: str) -> None:
    journal_transitions.labels(transition=transition).inc()


def record_ledger_error(code: str) -> None:
    ledger_errors.labels(code=code).inc()


def collect_metrics():
    """Refresh gauges that are read from the database."""
    from accounting.models import JournalEntry

    try:
        counts = dict(
            JournalEntry.objects.order_by()
            .values_list("status")
            .annotate(count=Count("id"))
        )
    except DatabaseError as e:
        logger.error(f"Error collecting metrics: {e}")
        return

    for status in JournalEntry.Status.values:
        journal_entries.labels(status=status).set(counts.get(status, 0))


class MetricsView(View):
    """
    Prometheus metrics endpoint.

    Exposes metrics in Prometheus format at /_metrics/.
    Should be protected in production (internal network only).
    """

    def get(self, request):
        collect_metrics()
        return HttpResponse(generate_latest(), content_type=CONTENT_TYPE_LATEST)


def _endpoint_label(path: str) -> str:
    # Collapse ids to keep label cardinality bounded
    path = re.sub(r"/\d+/", "/{id}/", path)
    path = re.sub(r"/[0-9a-f-]{36}/", "/{uuid}/", path)
    return path[:50]


def track_request_metrics(get_response):
    """
    Middleware to track request duration metrics.

    Add to MIDDLEWARE after SecurityMiddleware:
        "ops.metrics.track_request_metrics",
    """

    def middleware(request):
        start = time.time()
        active_requests.inc()
        status = 500
        try:
            response = get_response(request)
            status = response.status_code
            return response
        finally:
            active_requests.dec()
            request_duration.labels(
                method=request.method,
                endpoint=_endpoint_label(request.path),
                status=f"{status // 100}xx",
            ).observe(time.time() - start)

    return middleware
