"""Tests for configuration loading."""

import pytest
import yaml
from pydantic import ValidationError

from openclaw_gateway.config import load_config
from openclaw_gateway.registry import ServiceRegistry


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "CONFIG_FILE",
        "GATEWAY_AUTH_TOKEN",
        "COMPOSE_FILE",
        "PROJECT_DIR",
        "CONTROL_BACKEND",
        "BROADCAST_INTERVAL",
        "CORS_ORIGIN",
    ):
        monkeypatch.delenv(name, raising=False)


def test_packaged_config():
    """Test the bundled config describes the full stack."""
    config = load_config()
    registry = ServiceRegistry(config.services)

    assert len(registry) == 16
    assert registry.lookup("redis").container == "openclaw-redis"
    assert registry.lookup("gateway").local_build is True
    assert set(registry.categories()) == {"core", "databases", "messaging", "monitoring"}
    assert config.control.backend == "engine"
    assert config.broadcast.interval_seconds == 30
    assert config.auth.token is None


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("GATEWAY_AUTH_TOKEN", "s3cret")
    monkeypatch.setenv("COMPOSE_FILE", "docker-compose.yml")
    monkeypatch.setenv("PROJECT_DIR", "/srv/openclaw")
    monkeypatch.setenv("CONTROL_BACKEND", "compose")
    monkeypatch.setenv("BROADCAST_INTERVAL", "5")
    monkeypatch.setenv("CORS_ORIGIN", "https://a.example, https://b.example")

    config = load_config()

    assert config.auth.token == "s3cret"
    assert config.control.compose_file == "docker-compose.yml"
    assert config.control.project_dir == "/srv/openclaw"
    assert config.control.backend == "compose"
    assert config.broadcast.interval_seconds == 5
    assert config.cors_origins == ["https://a.example", "https://b.example"]


def test_config_file_env(tmp_path, monkeypatch):
    path = tmp_path / "gateway.yml"
    path.write_text(
        "services:\n"
        "  - name: redis\n"
        "    container: openclaw-redis\n"
        "    category: databases\n"
    )
    monkeypatch.setenv("CONFIG_FILE", str(path))

    config = load_config()

    assert [service.name for service in config.services] == ["redis"]


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "missing.yml"))


def test_invalid_yaml(tmp_path):
    path = tmp_path / "broken.yml"
    path.write_text("services: [unclosed\n")

    with pytest.raises(yaml.YAMLError):
        load_config(str(path))


def test_invalid_schema(tmp_path):
    path = tmp_path / "bad.yml"
    path.write_text(
        "services:\n"
        "  - name: redis\n"
        "    container: openclaw-redis\n"
        "    category: caches\n"
    )

    with pytest.raises(ValidationError):
        load_config(str(path))
