from __future__ import annotations

import pytest

from config import Config


def _config(monkeypatch, **env):
    for key, val in env.items():
        monkeypatch.setenv(key, val)
    return Config()


def test_defaults(monkeypatch):
    for key in ("APP_ENV", "FORM_APPROVAL_CHAIN", "NOTIFY_MODE", "MAIL_BACKEND", "HIRING_MODULE_ENABLED"):
        monkeypatch.delenv(key, raising=False)
    cfg = Config()
    cfg.validate()
    assert cfg.IS_PRODUCTION is False
    assert cfg.FORM_APPROVAL_CHAIN == "manual"
    assert cfg.HIRING_MODULE_ENABLED is True
    assert cfg.LIFECYCLE_TOKEN_TTL_DAYS == 7


def test_unknown_policy_values_fail_fast(monkeypatch):
    with pytest.raises(RuntimeError):
        _config(monkeypatch, FORM_APPROVAL_CHAIN="offer").validate()


def test_celery_mail_needs_redis(monkeypatch):
    monkeypatch.delenv("REDIS_URL", raising=False)
    with pytest.raises(RuntimeError):
        _config(monkeypatch, MAIL_BACKEND="celery").validate()


def test_production_refuses_dev_pepper_and_sqlite(monkeypatch):
    monkeypatch.delenv("TOKEN_PEPPER", raising=False)
    with pytest.raises(RuntimeError, match="TOKEN_PEPPER"):
        _config(monkeypatch, APP_ENV="production", MAIL_BACKEND="console").validate()

    with pytest.raises(RuntimeError, match="SQLite"):
        _config(
            monkeypatch,
            APP_ENV="production",
            MAIL_BACKEND="console",
            TOKEN_PEPPER="p" * 40,
            DATABASE_URL="sqlite:///prod.db",
        ).validate()
