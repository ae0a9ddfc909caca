from __future__ import annotations

import pytest

from strategy_engine.config import ConfigError, engine_config, engine_secret, load_config, resolve_secret, to_dict


def test_resolve_secret_prefers_env(monkeypatch):
    monkeypatch.setenv("TWELVE_DATA_API_KEY", "from_env")
    assert resolve_secret("TWELVE_DATA_API_KEY", "from_config") == "from_env"


def test_resolve_secret_uses_literal_when_env_missing(monkeypatch):
    monkeypatch.delenv("TWELVE_DATA_API_KEY", raising=False)
    assert resolve_secret("TWELVE_DATA_API_KEY", "from_config") == "from_config"


def test_resolve_secret_empty_when_missing():
    assert resolve_secret("DOES_NOT_EXIST", "") == ""


def test_resolve_secret_accepts_non_env_style_env_key_as_literal(monkeypatch):
    key_like = "abc123def456"
    monkeypatch.delenv(key_like, raising=False)
    assert resolve_secret(key_like, "") == key_like


def test_load_config_defaults_when_file_missing(tmp_path):
    cfg = load_config(str(tmp_path / "missing.yaml"))
    assert cfg.cache_ttl_seconds == 300
    assert cfg.interval_minutes == 5
    assert cfg.twelvedata_api_key_env == "TWELVE_DATA_API_KEY"
    assert cfg.dry_run is False


def test_load_config_reads_sections(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        """
dry_run: true
db_path: /tmp/x.db
twelvedata:
  api_key: literal-key
  timeout_seconds: 4
engine:
  cache_ttl_seconds: 120
  max_workers: 2
server:
  port: 9000
""",
        encoding="utf-8",
    )
    cfg = load_config(str(path))
    assert cfg.dry_run is True
    assert cfg.db_path == "/tmp/x.db"
    assert cfg.twelvedata_timeout_seconds == 4.0
    assert cfg.server_port == 9000
    assert cfg.max_workers == 2


def test_engine_config_requires_api_key(tmp_path, monkeypatch):
    monkeypatch.delenv("TWELVE_DATA_API_KEY", raising=False)
    cfg = load_config(str(tmp_path / "missing.yaml"))
    with pytest.raises(ConfigError):
        engine_config(cfg)

    monkeypatch.setenv("TWELVE_DATA_API_KEY", "k")
    ecfg = engine_config(cfg)
    assert ecfg.api_key == "k"
    assert ecfg.cache_ttl_seconds == 300


def test_engine_secret_required(tmp_path, monkeypatch):
    monkeypatch.delenv("ENGINE_SECRET", raising=False)
    cfg = load_config(str(tmp_path / "missing.yaml"))
    with pytest.raises(ConfigError):
        engine_secret(cfg)


def test_to_dict_redacts_secrets(tmp_path):
    cfg = load_config(str(tmp_path / "missing.yaml"))
    cfg.twelvedata_api_key = "real"
    assert to_dict(cfg)["twelvedata_api_key"] == "***"
