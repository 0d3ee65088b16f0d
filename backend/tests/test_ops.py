# tests/test_ops.py
"""
Tests for the ops module.

Tests cover:
- JSON log formatting with ledger scope fields
- LOGGING configuration selection
- Database health check
"""

import json
import logging
from decimal import Decimal
from unittest import mock

import pytest
from django.db import OperationalError

from ops.health import HealthCheck
from ops.logging_config import JsonFormatter, get_logging_config


def _record(**extra):
    record = logging.LogRecord(
        name="accounting.commands",
        level=logging.INFO,
        pathname=__file__,
        lineno=10,
        msg="Journal entry posted",
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJsonFormatter:

    def test_scope_fields_are_top_level(self):
        payload = json.loads(JsonFormatter().format(
            _record(tenant_id=1, company_id=2, user_id=3, entry_id=40, status="POSTED"),
        ))

        assert payload["message"] == "Journal entry posted"
        assert payload["level"] == "INFO"
        assert (payload["tenant_id"], payload["company_id"], payload["user_id"]) == (1, 2, 3)
        assert payload["extra"] == {"entry_id": 40, "status": "POSTED"}

    def test_non_serializable_extra_is_stringified(self):
        payload = json.loads(JsonFormatter().format(_record(total_debit=Decimal("10.50"))))

        assert payload["extra"]["total_debit"] == "10.50"

    def test_no_extra_key_without_extras(self):
        payload = json.loads(JsonFormatter().format(_record()))

        assert "extra" not in payload
        assert "tenant_id" not in payload


class TestLoggingConfig:

    def test_console_in_debug(self, monkeypatch):
        monkeypatch.delenv("LOG_FORMAT", raising=False)
        config = get_logging_config(debug=True)

        assert config["handlers"]["console"]["formatter"] == "verbose"

    def test_json_in_production(self, monkeypatch):
        monkeypatch.delenv("LOG_FORMAT", raising=False)
        config = get_logging_config(debug=False)

        assert config["handlers"]["console"]["formatter"] == "json"

    def test_app_loggers_propagate(self):
        config = get_logging_config(debug=False)

        assert config["loggers"]["accounting"]["propagate"] is True


@pytest.mark.django_db
class TestHealthCheck:

    def test_database_healthy(self):
        assert HealthCheck.check_database()["status"] == "healthy"

    def test_database_unhealthy(self):
        with mock.patch("ops.health.connections") as connections:
            connections.__getitem__.return_value.ensure_connection.side_effect = OperationalError("down")
            result = HealthCheck.check_database()

        assert result["status"] == "unhealthy"
        assert "down" in result["error"]

    def test_redis_skipped_without_broker(self, settings):
        settings.CELERY_BROKER_URL = ""

        assert HealthCheck.check_redis()["status"] == "skipped"
