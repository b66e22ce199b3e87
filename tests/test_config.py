import pytest

from taskdesk.backend.config import Settings
from taskdesk.backend.domain import ConfigError
from taskdesk.backend.identity import LocalIdentityProvider, SupabaseIdentityProvider
from taskdesk.backend.main import build_identity, build_store
from taskdesk.backend.store import MemoryStore, SqliteStore, SupabaseStore


def test_supabase_backend_requires_url_and_key():
    with pytest.raises(ConfigError) as exc_info:
        Settings.from_env({})
    assert "SUPABASE_URL" in str(exc_info.value)
    assert "SUPABASE_SERVICE_ROLE_KEY" in str(exc_info.value)


def test_supabase_settings_from_env():
    settings = Settings.from_env({
        "SUPABASE_URL": "https://x.supabase.co/",
        "SUPABASE_SERVICE_ROLE_KEY": "key",
        "PORT": "8080",
        "CORS_ORIGINS": "http://a.test, http://b.test",
        "APP_ENV": "production",
    })
    assert settings.backend == "supabase"
    assert settings.supabase_url == "https://x.supabase.co"
    assert settings.port == 8080
    assert settings.cors_origins == ["http://a.test", "http://b.test"]
    assert settings.is_production
    assert settings.log_level == "INFO"


def test_local_defaults():
    settings = Settings.from_env({"TASKDESK_BACKEND": "sqlite"})
    assert settings.db_path == "taskdesk.db"
    assert settings.port == 3001
    assert settings.cors_origins == ["http://localhost:3000"]
    assert not settings.is_production
    assert settings.log_level == "DEBUG"


@pytest.mark.parametrize("environ,match", [
    ({"TASKDESK_BACKEND": "mongo"}, "TASKDESK_BACKEND"),
    ({"TASKDESK_BACKEND": "memory", "PORT": "eighty"}, "PORT"),
])
def test_invalid_values_fail_fast(environ, match):
    with pytest.raises(ConfigError, match=match):
        Settings.from_env(environ)


def test_backends_built_from_settings(tmp_path):
    supabase = Settings(backend="supabase", supabase_url="https://x.supabase.co", supabase_key="k")
    assert isinstance(build_store(supabase), SupabaseStore)
    assert isinstance(build_identity(supabase), SupabaseIdentityProvider)

    sqlite = Settings(backend="sqlite", db_path=str(tmp_path / "t.db"))
    assert isinstance(build_store(sqlite), SqliteStore)
    assert isinstance(build_identity(sqlite), LocalIdentityProvider)

    assert isinstance(build_store(Settings(backend="memory")), MemoryStore)
