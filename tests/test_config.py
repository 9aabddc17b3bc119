"""
Tests for settings parsing (adwatch.config).
"""

import ssl

from adwatch.config import Settings
from adwatch.database import ssl_connect_args


def test_database_url_is_converted_to_asyncpg():
    settings = Settings(database_url="postgres://u:p@db.example.com:5432/ads")
    assert settings.async_database_url == "postgresql+asyncpg://u:p@db.example.com:5432/ads"

    settings = Settings(database_url="postgresql://u:p@localhost/ads")
    assert settings.async_database_url == "postgresql+asyncpg://u:p@localhost/ads"


def test_celery_urls_derive_from_redis_url():
    settings = Settings(redis_url="redis://cache:6379/0", celery_broker_url="", celery_result_backend="")
    assert settings.effective_celery_broker_url == "redis://cache:6379/1"
    assert settings.effective_celery_result_backend == "redis://cache:6379/2"

    settings = Settings(celery_broker_url="amqp://rabbit//")
    assert settings.effective_celery_broker_url == "amqp://rabbit//"


def test_alert_thresholds_are_sorted_integers():
    settings = Settings(budget_alert_thresholds="100, 80,90,")
    assert settings.alert_threshold_list == [80, 90, 100]


def test_defaults_match_documented_behaviour():
    settings = Settings()
    assert settings.token_refresh_margin_seconds == 300
    assert settings.alert_threshold_list == [80, 90, 100]
    assert settings.sync_batch_size == 3


def test_ssl_only_for_remote_database_hosts():
    assert ssl_connect_args("postgresql+asyncpg://u:p@localhost:5432/ads") == {}
    assert ssl_connect_args("postgresql+asyncpg://u:p@postgres/ads") == {}

    relaxed = ssl_connect_args("postgresql+asyncpg://u:p@db.example.com/ads")["ssl"]
    assert relaxed.verify_mode == ssl.CERT_NONE
    assert relaxed.check_hostname is False

    strict = ssl_connect_args("postgresql+asyncpg://u:p@db.example.com/ads", verify=True)["ssl"]
    assert strict.verify_mode == ssl.CERT_REQUIRED
