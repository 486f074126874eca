"""
Unit tests for configuration loading and connection precedence.
"""

import os
from unittest.mock import patch

import pytest

from app.config import SyncSettings, resolve_connection
from app.models.email_sync import UserCredential


_ENV_KEYS = [
    "DEFAULT_IMAP_HOST",
    "DEFAULT_IMAP_PORT",
    "DEFAULT_IMAP_SECURE",
    "MAX_EMAILS_PER_SYNC",
    "SYNC_LOOKBACK_DAYS",
    "SYNC_USER_DELAY_MS",
    "SYNC_MAILBOX",
    "SYNC_INTERVAL_MINUTES",
    "SYNC_SCHEDULER_ENABLED",
]


@pytest.fixture()
def clean_env():
    with patch.dict(os.environ, {}, clear=False):
        for key in _ENV_KEYS:
            os.environ.pop(key, None)
        yield


def _credential(**overrides) -> UserCredential:
    row = {"user_id": "u", "imap_username": "u@x", "imap_password": "p"}
    row.update(overrides)
    return UserCredential.model_validate(row)


class TestSyncSettingsFromEnv:

    def test_defaults(self, clean_env):
        settings = SyncSettings.from_env()

        assert settings.imap_host == "mail.titan.email"
        assert settings.imap_port == 993
        assert settings.imap_secure is True
        assert settings.max_emails == 50
        assert settings.lookback_days == 30
        assert settings.user_delay_ms == 1000
        assert settings.mailbox == "INBOX"
        assert settings.sync_interval_minutes == 5
        assert settings.scheduler_enabled is True

    def test_reads_environment(self, clean_env):
        os.environ.update({
            "DEFAULT_IMAP_HOST": "imap.example.com",
            "DEFAULT_IMAP_PORT": "143",
            "DEFAULT_IMAP_SECURE": "false",
            "MAX_EMAILS_PER_SYNC": "100",
            "SYNC_LOOKBACK_DAYS": "7",
            "SYNC_USER_DELAY_MS": "250",
            "SYNC_MAILBOX": "Archive",
            "SYNC_INTERVAL_MINUTES": "15",
            "SYNC_SCHEDULER_ENABLED": "false",
        })

        settings = SyncSettings.from_env()

        assert settings.imap_host == "imap.example.com"
        assert settings.imap_port == 143
        assert settings.imap_secure is False
        assert settings.max_emails == 100
        assert settings.lookback_days == 7
        assert settings.user_delay_ms == 250
        assert settings.mailbox == "Archive"
        assert settings.sync_interval_minutes == 15
        assert settings.scheduler_enabled is False

    @pytest.mark.parametrize("value", ["abc", "0", "-5", "  "])
    def test_bad_integers_fall_back_to_default(self, clean_env, value):
        os.environ["MAX_EMAILS_PER_SYNC"] = value
        assert SyncSettings.from_env().max_emails == 50

    @pytest.mark.parametrize("value,expected", [("true", True), ("TRUE", True), ("0", True), ("False", False)])
    def test_secure_is_true_unless_literal_false(self, clean_env, value, expected):
        os.environ["DEFAULT_IMAP_SECURE"] = value
        assert SyncSettings.from_env().imap_secure is expected


class TestResolveConnection:

    def test_service_defaults_apply_without_overrides(self):
        settings = SyncSettings(imap_host="env.example.com", imap_port=1993, imap_secure=False)

        assert resolve_connection(_credential(), settings) == ("env.example.com", 1993, False)

    def test_user_overrides_take_precedence(self):
        settings = SyncSettings(imap_host="env.example.com", imap_port=1993, imap_secure=False)
        credential = _credential(imap_host="user.example.com", imap_port=143, imap_secure=True)

        assert resolve_connection(credential, settings) == ("user.example.com", 143, True)

    def test_hard_coded_fallback(self):
        assert resolve_connection(_credential(), SyncSettings()) == ("mail.titan.email", 993, True)

    def test_partial_override(self):
        credential = _credential(imap_port=143)
        assert resolve_connection(credential, SyncSettings()) == ("mail.titan.email", 143, True)
