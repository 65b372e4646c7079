"""Tests for configuration loading."""

from maestro.config import load_config
from maestro.notifications import InMemoryNotifier, get_notifier
from maestro.notifications.redis import RedisNotifier
from maestro.persistence import (
    InMemoryWorkflowRepository,
    SQLiteWorkflowRepository,
    get_repository,
)


def test_load_config_from_env(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
notifications:
  backend: redis
  channel_prefix: wf
  redis:
    host: testhost
    port: 1234
recovery:
  max_attempts: 5
checkpoints:
  ttl_days: 7
"""
    )
    monkeypatch.setenv("MAESTRO_CONFIG", str(config_path))
    monkeypatch.delenv("MAESTRO_NOTIFIER", raising=False)

    config = load_config()
    assert config.notifications.backend == "redis"
    assert config.notifications.redis.host == "testhost"
    assert config.notifications.redis.port == 1234
    assert config.recovery.max_attempts == 5
    assert config.recovery.multiplier == 2.0
    assert config.checkpoints.ttl_days == 7


def test_defaults_when_file_missing(tmp_path, monkeypatch):
    monkeypatch.setenv("MAESTRO_CONFIG", str(tmp_path / "missing.yaml"))
    for var in ("MAESTRO_DATABASE_URL", "DATABASE_URL", "MAESTRO_NOTIFIER", "GITHUB_TOKEN"):
        monkeypatch.delenv(var, raising=False)

    config = load_config()
    assert config.database_url is None
    assert config.notifications.backend == "inmemory"
    assert config.checkpoints.max_in_memory == 10
    assert config.checkpoints.ttl_days == 30
    assert config.artifacts.root == "docs"


def test_environment_overrides(tmp_path, monkeypatch):
    monkeypatch.setenv("MAESTRO_CONFIG", str(tmp_path / "missing.yaml"))
    monkeypatch.setenv("MAESTRO_DATABASE_URL", "sqlite://" + str(tmp_path / "wf.db"))
    monkeypatch.setenv("MAESTRO_NOTIFIER", "INMEMORY")
    monkeypatch.setenv("GITHUB_TOKEN", "ghp_test")

    config = load_config()
    assert config.database_url.endswith("wf.db")
    assert config.notifications.backend == "inmemory"
    assert config.github.token == "ghp_test"


def test_get_notifier_uses_config(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
notifications:
  backend: redis
  redis:
    host: confighost
    port: 6380
"""
    )
    monkeypatch.setenv("MAESTRO_CONFIG", str(config_path))
    monkeypatch.delenv("MAESTRO_NOTIFIER", raising=False)

    notifier = get_notifier()
    assert isinstance(notifier, RedisNotifier)
    assert notifier.host == "confighost"
    assert notifier.port == 6380

    assert isinstance(get_notifier("inmemory"), InMemoryNotifier)


def test_get_repository_selects_backend(tmp_path, monkeypatch):
    monkeypatch.setenv("MAESTRO_CONFIG", str(tmp_path / "missing.yaml"))
    monkeypatch.delenv("MAESTRO_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)

    assert isinstance(get_repository(), InMemoryWorkflowRepository)
    repo = get_repository("sqlite://" + str(tmp_path / "wf.db"))
    assert isinstance(repo, SQLiteWorkflowRepository)
    repo.close()
