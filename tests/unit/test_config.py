"""
Unit Tests: SessionConfig

Covers field validation, PGWIRE_* environment loading with explicit
overrides, and password masking for logs.
"""

import pytest
from pydantic import ValidationError

from pgwire_client.config import SessionConfig

ENV_VARS = ["PGWIRE_HOST", "PGWIRE_PORT", "PGWIRE_DATABASE", "PGWIRE_USER",
            "PGWIRE_PASSWORD", "PGWIRE_AUTOCOMMIT", "PGWIRE_CONNECT_TIMEOUT"]


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.mark.unit
class TestSessionConfig:

    def test_defaults(self):
        config = SessionConfig(database="db", user="me")

        assert config.host == "localhost"
        assert config.port == 5432
        assert config.password == ""
        assert config.autocommit is True
        assert config.connect_timeout is None
        assert config.encoding == "utf-8"

    @pytest.mark.parametrize("port", [0, -1, 65536])
    def test_port_range(self, port):
        with pytest.raises(ValidationError, match="port"):
            SessionConfig(database="db", user="me", port=port)

    def test_database_required(self):
        with pytest.raises(ValidationError, match="database"):
            SessionConfig(user="me")

    def test_empty_user_rejected(self):
        with pytest.raises(ValidationError, match="user must not be empty"):
            SessionConfig(database="db", user="")

    def test_timeout_must_be_positive(self):
        with pytest.raises(ValidationError, match="connect_timeout"):
            SessionConfig(database="db", user="me", connect_timeout=0)

    def test_unknown_encoding(self):
        with pytest.raises(ValidationError, match="unknown encoding"):
            SessionConfig(database="db", user="me", encoding="no-such-codec")

    def test_validation_error_is_value_error(self):
        with pytest.raises(ValueError):
            SessionConfig(database="db", user="me", port=70000)

    def test_frozen(self):
        config = SessionConfig(database="db", user="me")
        with pytest.raises(ValidationError):
            config.port = 1

    def test_safe_dict_masks_password(self):
        config = SessionConfig(database="db", user="me", password="hunter2")
        data = config.safe_dict()

        assert data["password"] == "***"
        assert data["user"] == "me"
        assert "hunter2" not in str(data)

    def test_safe_dict_empty_password(self):
        assert SessionConfig(database="db", user="me").safe_dict()["password"] == ""


@pytest.mark.unit
class TestFromEnv:

    def test_reads_environment(self, clean_env):
        clean_env.setenv("PGWIRE_HOST", "pg.internal")
        clean_env.setenv("PGWIRE_PORT", "6000")
        clean_env.setenv("PGWIRE_DATABASE", "sales")
        clean_env.setenv("PGWIRE_USER", "report")
        clean_env.setenv("PGWIRE_PASSWORD", "pw")
        clean_env.setenv("PGWIRE_AUTOCOMMIT", "off")
        clean_env.setenv("PGWIRE_CONNECT_TIMEOUT", "2.5")

        config = SessionConfig.from_env()

        assert config.host == "pg.internal"
        assert config.port == 6000
        assert config.database == "sales"
        assert config.user == "report"
        assert config.password == "pw"
        assert config.autocommit is False
        assert config.connect_timeout == 2.5

    def test_overrides_win(self, clean_env):
        clean_env.setenv("PGWIRE_DATABASE", "sales")
        clean_env.setenv("PGWIRE_USER", "report")

        config = SessionConfig.from_env(user="admin", port=7000)

        assert config.user == "admin"
        assert config.port == 7000
        assert config.database == "sales"

    def test_none_overrides_are_ignored(self, clean_env):
        clean_env.setenv("PGWIRE_DATABASE", "sales")
        clean_env.setenv("PGWIRE_USER", "report")

        config = SessionConfig.from_env(host=None, user=None)

        assert config.host == "localhost"
        assert config.user == "report"

    @pytest.mark.parametrize("raw,expected", [("1", True), ("TRUE", True), ("yes", True),
                                              ("0", False), ("false", False), ("No", False)])
    def test_autocommit_values(self, clean_env, raw, expected):
        clean_env.setenv("PGWIRE_AUTOCOMMIT", raw)
        config = SessionConfig.from_env(database="db", user="me")
        assert config.autocommit is expected

    def test_bad_autocommit_value(self, clean_env):
        clean_env.setenv("PGWIRE_AUTOCOMMIT", "maybe")
        with pytest.raises(ValueError, match="PGWIRE_AUTOCOMMIT"):
            SessionConfig.from_env(database="db", user="me")

    def test_missing_required_values(self, clean_env):
        with pytest.raises(ValidationError):
            SessionConfig.from_env()
