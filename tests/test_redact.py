"""Tests for flatdock.redact: secret redaction in text and log records."""

import logging

import pytest

import flatdock.redact as redact_module
from flatdock.redact import SecretRedactingFilter, redact_secrets, register_secret


@pytest.fixture(autouse=True)
def _reset_cache(monkeypatch):
    """Start each test with no registered secrets and an empty pattern cache."""
    monkeypatch.setattr(redact_module, "_registered", set())
    redact_module._patterns = None
    yield
    redact_module._patterns = None


def _record(msg, args=None):
    return logging.LogRecord(
        name="test",
        level=logging.INFO,
        pathname="",
        lineno=0,
        msg=msg,
        args=args,
        exc_info=None,
    )


# ── redact_secrets ──────────────────────────────────────────────


def test_redact_secrets_replaces_env_value(monkeypatch):
    monkeypatch.setenv("HCLOUD_TOKEN", "hc_SuperSecretToken123")

    text = "GET /servers with token hc_SuperSecretToken123 failed"
    assert redact_secrets(text) == "GET /servers with token *** failed"


def test_redact_secrets_short_values_ignored(monkeypatch):
    monkeypatch.setenv("HCLOUD_TOKEN", "short")

    text = "Token is short and should not be redacted"
    assert redact_secrets(text) == text


def test_redact_secrets_no_env_vars(monkeypatch):
    for var in redact_module._SECRET_ENV_VARS:
        monkeypatch.delenv(var, raising=False)

    text = "Nothing secret here"
    assert redact_secrets(text) == text


def test_registered_secret_is_redacted(monkeypatch):
    monkeypatch.delenv("HCLOUD_TOKEN", raising=False)
    assert redact_secrets("token=from_config_file_token") == "token=from_config_file_token"

    register_secret("from_config_file_token")

    assert redact_secrets("token=from_config_file_token") == "token=***"


def test_redact_secrets_multiple_values(monkeypatch):
    monkeypatch.setenv("HCLOUD_TOKEN", "hc_TokenAAAA")
    register_secret("cfg_token_BBBB_long_enough")

    result = redact_secrets("ENV=hc_TokenAAAA CFG=cfg_token_BBBB_long_enough done")
    assert result == "ENV=*** CFG=*** done"


# ── SecretRedactingFilter ───────────────────────────────────────


def test_secret_redacting_filter(monkeypatch):
    monkeypatch.setenv("HCLOUD_TOKEN", "hc_FilterTestToken99")

    record = _record("Using token hc_FilterTestToken99")
    assert SecretRedactingFilter().filter(record)
    assert record.msg == "Using token ***"


def test_secret_redacting_filter_with_args(monkeypatch):
    monkeypatch.setenv("HCLOUD_TOKEN", "hc_ArgsTestToken88")

    record = _record("Token: %s", args=("hc_ArgsTestToken88",))
    SecretRedactingFilter().filter(record)
    assert record.args == ("***",)


def test_filter_on_handler_covers_child_loggers(monkeypatch, caplog):
    monkeypatch.setenv("HCLOUD_TOKEN", "hc_ChildLoggerToken77")
    caplog.handler.addFilter(SecretRedactingFilter())

    logging.getLogger("flatdock.provisioning.hcloud").warning("Bearer hc_ChildLoggerToken77 rejected")

    assert "hc_ChildLoggerToken77" not in caplog.text
    assert "Bearer *** rejected" in caplog.text
