from __future__ import annotations

import os
import re
from dataclasses import asdict
from typing import Any

import yaml

from .constants import (
    CACHE_TTL_SECONDS,
    DEFAULT_INTERVAL_MINUTES,
    DEFAULT_MAX_WORKERS,
    REQUEST_TIMEOUT_SECONDS,
    TELEGRAM_API_BASE,
    TWELVEDATA_BASE_URL,
)
from .models import Config, EngineConfig


class ConfigError(Exception):
    pass


def load_config(path: str) -> Config:
    raw: dict[str, Any] = {}
    if os.path.exists(path):
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise ConfigError(f"{path}: top level must be a mapping")

    twelvedata = raw.get("twelvedata", {}) or {}
    engine = raw.get("engine", {}) or {}
    telegram = raw.get("telegram", {}) or {}
    server = raw.get("server", {}) or {}

    return Config(
        dry_run=bool(raw.get("dry_run", False)),
        db_path=str(raw.get("db_path", "strategy_engine.db")),
        twelvedata_api_key_env=str(twelvedata.get("api_key_env", "TWELVE_DATA_API_KEY")),
        twelvedata_api_key=str(twelvedata.get("api_key", "")),
        twelvedata_base_url=str(twelvedata.get("base_url", TWELVEDATA_BASE_URL)),
        twelvedata_timeout_seconds=float(twelvedata.get("timeout_seconds", REQUEST_TIMEOUT_SECONDS)),
        engine_secret_env=str(engine.get("secret_env", "ENGINE_SECRET")),
        engine_secret=str(engine.get("secret", "")),
        cache_ttl_seconds=int(engine.get("cache_ttl_seconds", CACHE_TTL_SECONDS)),
        max_workers=int(engine.get("max_workers", DEFAULT_MAX_WORKERS)),
        interval_minutes=int(engine.get("interval_minutes", DEFAULT_INTERVAL_MINUTES)),
        telegram_api_base=str(telegram.get("api_base", TELEGRAM_API_BASE)),
        telegram_timeout_seconds=float(telegram.get("timeout_seconds", REQUEST_TIMEOUT_SECONDS)),
        server_host=str(server.get("host", "0.0.0.0")),
        server_port=int(server.get("port", 8080)),
    )


def resolve_secret(env_name: str, literal: str) -> str:
    # Prefer environment variable value when present.
    if env_name and env_name in os.environ:
        return os.environ[env_name]
    if literal:
        return literal
    # Some configs store direct values in *_env keys.
    if env_name and not _looks_like_env_name(env_name):
        return env_name
    return ""


def _looks_like_env_name(value: str) -> bool:
    return bool(re.fullmatch(r"[A-Z_][A-Z0-9_]*", value))


def engine_config(cfg: Config) -> EngineConfig:
    api_key = resolve_secret(cfg.twelvedata_api_key_env, cfg.twelvedata_api_key)
    if not api_key:
        raise ConfigError("Missing Twelve Data API key (env or config)")
    return EngineConfig(
        api_key=api_key,
        base_url=cfg.twelvedata_base_url,
        request_timeout=cfg.twelvedata_timeout_seconds,
        cache_ttl_seconds=cfg.cache_ttl_seconds,
        max_workers=cfg.max_workers,
        dry_run=cfg.dry_run,
    )


def engine_secret(cfg: Config) -> str:
    secret = resolve_secret(cfg.engine_secret_env, cfg.engine_secret)
    if not secret:
        raise ConfigError("Missing engine secret for the HTTP trigger (env or config)")
    return secret


def to_dict(cfg: Config) -> dict[str, Any]:
    out = asdict(cfg)
    for key in ("twelvedata_api_key", "engine_secret"):
        if out.get(key):
            out[key] = "***"
    return out
