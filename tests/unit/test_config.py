"""Tests for configuration loading."""

from fedlink.config import load_config


def test_load_config_from_env(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
domain: example.com
tenant_id: tenant-1
retry:
  attempts: 5
  base_delay: 0.5
google:
  customer: C0123
"""
    )
    monkeypatch.setenv("FEDLINK_CONFIG", str(config_path))
    monkeypatch.delenv("FEDLINK_DOMAIN", raising=False)
    monkeypatch.delenv("FEDLINK_TENANT_ID", raising=False)

    config = load_config()
    assert config.domain == "example.com"
    assert config.tenant_id == "tenant-1"
    assert config.retry.attempts == 5
    assert config.retry.base_delay == 0.5
    assert config.google.customer == "C0123"
    assert config.microsoft.graph_base == "https://graph.microsoft.com/v1.0"


def test_env_overrides_file_values(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("domain: from-file.com\n")
    monkeypatch.setenv("FEDLINK_DOMAIN", "from-env.com")
    monkeypatch.setenv("FEDLINK_TENANT_ID", "tenant-env")
    monkeypatch.setenv("FEDLINK_DATABASE_URL", "sqlite://progress.db")

    config = load_config(str(config_path))
    assert config.domain == "from-env.com"
    assert config.tenant_id == "tenant-env"
    assert config.database_url == "sqlite://progress.db"


def test_missing_file_gives_defaults(tmp_path, monkeypatch):
    for var in ("FEDLINK_CONFIG", "FEDLINK_DOMAIN", "FEDLINK_TENANT_ID", "FEDLINK_DATABASE_URL"):
        monkeypatch.delenv(var, raising=False)

    config = load_config(str(tmp_path / "absent.yaml"))
    assert config.domain is None
    assert config.database_url is None
    assert config.retry.attempts == 3
    assert config.google.customer == "my_customer"
