"""
Settings Tests

Covers: defaults, backend selection and interval validation.
"""

import pytest
from pydantic import ValidationError

from app.config.settings import Settings


def make_settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


def test_defaults():
    settings = make_settings()
    assert settings.MONEY_DECIMAL_PLACES == 8
    assert settings.celery_broker == settings.REDIS_URL


def test_ledger_backend_is_normalized():
    assert make_settings(LEDGER_BACKEND="MONGO").LEDGER_BACKEND == "mongo"


def test_unknown_ledger_backend_rejected():
    with pytest.raises(ValidationError):
        make_settings(LEDGER_BACKEND="postgres")


@pytest.mark.parametrize("field", ["SCANNER_INTERVAL_SECONDS", "PRICE_FETCH_TIMEOUT_SECONDS"])
def test_intervals_must_be_positive(field):
    with pytest.raises(ValidationError):
        make_settings(**{field: 0})


def test_money_places_range():
    with pytest.raises(ValidationError):
        make_settings(MONEY_DECIMAL_PLACES=19)


def test_cors_origins_from_comma_separated_string():
    settings = make_settings(CORS_ORIGINS="http://a.test, http://b.test")
    assert settings.CORS_ORIGINS == ["http://a.test", "http://b.test"]
