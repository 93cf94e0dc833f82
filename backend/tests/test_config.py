from shared.config import Settings


def test_default_settings(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    s = Settings(_env_file=None)
    assert "postgresql+asyncpg" in s.DATABASE_URL
    assert s.LOCAL_DATABASE_URL.startswith("sqlite+aiosqlite")
    assert "redis" in s.REDIS_URL
    assert s.JWT_ALGORITHM == "HS256"
    assert s.SYNC_DEBOUNCE_SECONDS == 1.0
    assert s.SYNC_MAX_RETRIES == 3
    assert s.PRESENCE_TTL_SECONDS == 30.0


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql+asyncpg://test:test@db:5432/testdb")
    monkeypatch.setenv("REDIS_URL", "redis://redis-test:6379")
    monkeypatch.setenv("SYNC_MAX_RETRIES", "5")
    monkeypatch.setenv("SYNC_DEBOUNCE_SECONDS", "0.25")

    s = Settings(_env_file=None)
    assert s.DATABASE_URL == "postgresql+asyncpg://test:test@db:5432/testdb"
    assert s.REDIS_URL == "redis://redis-test:6379"
    assert s.SYNC_MAX_RETRIES == 5
    assert s.SYNC_DEBOUNCE_SECONDS == 0.25
