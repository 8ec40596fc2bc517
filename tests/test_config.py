import pytest
from pydantic import ValidationError

from cipherline_core.config import Settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in ("CIPHERLINE_STORAGE_PROVIDER", "CIPHERLINE_KEY_SIZE", "CIPHERLINE_REST_URL",
                "CIPHERLINE_REQUIRE_VERIFIED", "CIPHERLINE_RETRY_ATTEMPTS", "CIPHERLINE_NOTARY",
                "CIPHERLINE_DB_PATH", "CIPHERLINE_REST_KEY", "CIPHERLINE_TIMEOUT_S", "CIPHERLINE_LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)


def test_defaults():
    s = Settings()
    assert s.storage_provider == "sqlite"
    assert s.sqlite_path == "db/cipherline.db"
    assert s.key_size == 2048
    assert s.timeout_s == 15.0
    assert s.require_verified_email is True
    assert s.retry_policy().delays() == [1.0, 2.0]


def test_env_then_init_kwargs(monkeypatch):
    monkeypatch.setenv("CIPHERLINE_STORAGE_PROVIDER", "MEMORY")
    monkeypatch.setenv("CIPHERLINE_KEY_SIZE", "1024")
    monkeypatch.setenv("CIPHERLINE_REQUIRE_VERIFIED", "0")
    monkeypatch.setenv("CIPHERLINE_RETRY_ATTEMPTS", "5")
    monkeypatch.setenv("CIPHERLINE_DB_PATH", "/var/lib/cipherline/state.db")
    monkeypatch.setenv("CIPHERLINE_LOG_LEVEL", "debug")

    s = Settings()
    assert s.storage_provider == "memory"
    assert s.key_size == 1024
    assert s.require_verified_email is False
    assert s.retry_policy().max_attempts == 5
    assert s.sqlite_path == "/var/lib/cipherline/state.db"
    assert s.log_level == "DEBUG"

    s = Settings(key_size=2048, storage_provider="sqlite", sqlite_path="local.db", require_verified_email=True)
    assert s.key_size == 2048
    assert s.storage_provider == "sqlite"
    assert s.sqlite_path == "local.db"
    assert s.require_verified_email is True


def test_empty_env_values_fall_back_to_defaults(monkeypatch):
    monkeypatch.setenv("CIPHERLINE_REST_URL", "")
    monkeypatch.setenv("CIPHERLINE_TIMEOUT_S", "")
    s = Settings()
    assert s.rest_url is None
    assert s.timeout_s == 15.0


def test_settings_are_frozen():
    s = Settings()
    with pytest.raises(ValidationError):
        s.key_size = 1024


def test_component_configs():
    s = Settings(storage_provider="rest", rest_url="https://p.example.co", notary="http", timeout_s=5)
    assert s.storage_config() == {
        "provider": "rest",
        "sqlite_path": "db/cipherline.db",
        "rest_url": "https://p.example.co",
        "rest_key": None,
        "timeout": 5.0,
    }
    assert s.notary_config()["mode"] == "http"
    assert s.notary_config()["timeout"] == 5.0


@pytest.mark.parametrize("kwargs", [
    {"storage_provider": "postgres"},
    {"storage_provider": "rest"},
    {"notary": "blockchain"},
    {"key_size": 4096},
    {"key_size": "lots"},
    {"timeout_s": 0},
    {"key_cache_size": 0},
    {"retry_attempts": 0},
])
def test_invalid_settings(kwargs):
    with pytest.raises(ValueError):
        Settings(**kwargs)


def test_invalid_env_value(monkeypatch):
    monkeypatch.setenv("CIPHERLINE_KEY_SIZE", "512")
    with pytest.raises(ValidationError, match="Unsupported key size"):
        Settings()
