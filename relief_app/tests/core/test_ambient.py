import logging

from relief_app.core.config import Settings
from relief_app.core.logging import RequestIdFilter, request_id_var
from relief_app.db.session import engine_options
from relief_app.services.case_service import CaseService


def _settings(**overrides):
    base = {"database_url": "sqlite+pysqlite:///:memory:", "jwt_secret_key": "k"}
    base.update(overrides)
    return Settings(**base)


def test_request_id_filter_stamps_records():
    record = logging.LogRecord("x", logging.INFO, __file__, 1, "hello", None, None)
    token = request_id_var.set("rid-42")
    try:
        assert RequestIdFilter().filter(record) is True
    finally:
        request_id_var.reset(token)
    assert record.request_id == "rid-42"

    outside = logging.LogRecord("x", logging.INFO, __file__, 1, "hello", None, None)
    RequestIdFilter().filter(outside)
    assert outside.request_id is None


def test_engine_options_per_backend():
    sqlite = engine_options(_settings())
    assert sqlite["connect_args"] == {"check_same_thread": False}
    assert "pool_size" not in sqlite

    pg = engine_options(_settings(database_url="postgresql+psycopg2://u:p@db/relief", database_pool_size=3))
    assert pg["pool_pre_ping"] is True
    assert pg["pool_size"] == 3


def test_notifications_can_be_switched_off():
    assert CaseService(settings=_settings()).notifier is not None
    assert CaseService(settings=_settings(notifications_enabled=False)).notifier is None
