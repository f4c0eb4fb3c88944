"""
App factory, configuration and logging tests.
"""

import json
import logging

import pytest
from flask import g

from plm.config import ProductionConfig, config
from plm.middleware.logging_config import ConsoleFormatter, PLMJsonFormatter, RequestContextFilter


def _record(msg="Part revised", **extra):
    record = logging.LogRecord("plm.services.part_service", logging.INFO, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestConfig:
    def test_testing_config_loaded(self, app):
        assert app.config["TESTING"] is True
        assert app.config["PLM_MAX_BOM_DEPTH"] == 20
        assert app.config["PLM_SLOW_REQUEST_MS"] == 1000

    def test_config_names(self):
        assert set(config) == {"development", "testing", "production", "default"}

    def test_production_requires_env(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        monkeypatch.delenv("SECRET_KEY", raising=False)
        with pytest.raises(RuntimeError, match="DATABASE_URL"):
            ProductionConfig()


class TestLogging:
    def test_json_formatter_renders_domain_fields(self):
        line = PLMJsonFormatter().format(_record(part_id=7, revision_code="C", ignored="x"))
        entry = json.loads(line)
        assert entry["msg"] == "Part revised"
        assert entry["level"] == "INFO"
        assert entry["part_id"] == 7
        assert entry["revision_code"] == "C"
        assert "ignored" not in entry

    def test_console_formatter_tags(self):
        line = ConsoleFormatter().format(_record(change_order_id=3, actor_id=9))
        assert "co=3" in line
        assert "by=9" in line

    def test_request_filter_stamps_request_id(self, app):
        record = _record()
        with app.test_request_context("/api/v1/health/ready"):
            g.request_id = "req-42"
            assert RequestContextFilter().filter(record) is True
        assert record.request_id == "req-42"

    def test_request_filter_outside_request(self):
        record = _record()
        RequestContextFilter().filter(record)
        assert getattr(record, "request_id", None) is None
