from __future__ import annotations

import argparse
import logging
import sys

import uvicorn

from .config import ConfigError, engine_config, engine_secret, load_config, to_dict
from .engine import Engine
from .logging_utils import setup_logging
from .models import Config, EngineConfig
from .scheduler import run_every
from .server import create_app
from .sim import SimClient, SimJSONSource
from .storage import Storage
from .strategies import InvalidStrategy, load_strategies_file
from .telegram import TelegramClient

logger = logging.getLogger("strategy_engine")


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Strategy alert engine (Twelve Data + Telegram)")
    parser.add_argument("--config", default="config.yaml")
    parser.add_argument("--once", action="store_true", help="run one batch and exit")
    parser.add_argument("--serve", action="store_true", help="serve the HTTP trigger")
    parser.add_argument("--dry-run", action="store_true", help="log Telegram messages instead of sending")
    parser.add_argument("--sim-json", default="", help="answer market data from a JSON fixture")
    parser.add_argument("--db-path", default="")
    parser.add_argument("--import-strategies", default="", metavar="PATH")
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument("--json-logs", action="store_true")
    return parser


def build_engine(cfg: Config, storage: Storage, sim_json: str = "") -> Engine:
    if sim_json:
        engine_cfg = EngineConfig(
            api_key="sim",
            cache_ttl_seconds=cfg.cache_ttl_seconds,
            max_workers=cfg.max_workers,
            dry_run=True,
        )
        data_client = SimClient(SimJSONSource(sim_json))
        logger.info("mode sim_json path=%s", sim_json)
    else:
        engine_cfg = engine_config(cfg)
        data_client = None
        logger.info("mode live dry_run=%s", str(engine_cfg.dry_run).lower())

    telegram = TelegramClient(
        api_base=cfg.telegram_api_base,
        timeout=cfg.telegram_timeout_seconds,
        dry_run=engine_cfg.dry_run,
    )
    return Engine(engine_cfg, storage, data_client=data_client, telegram=telegram)


def import_strategies(storage: Storage, path: str) -> int:
    strategies = load_strategies_file(path)
    for strategy in strategies:
        storage.save_strategy(strategy)
        logger.info(
            "strategy_imported strategy_id=%s name=%s status=%s symbols=%d conditions=%d",
            strategy.id,
            strategy.name,
            strategy.status,
            len(strategy.symbols),
            len(strategy.conditions),
        )
    return len(strategies)


def run(args: argparse.Namespace) -> None:
    cfg = load_config(args.config)
    if args.dry_run:
        cfg.dry_run = True
    logger.debug("config %s", to_dict(cfg))

    db_path = args.db_path or cfg.db_path
    logger.info("storage_open path=%s", db_path)
    storage = Storage(db_path)
    try:
        if args.import_strategies:
            count = import_strategies(storage, args.import_strategies)
            print(f"Imported={count}")
            return
        secret = engine_secret(cfg) if args.serve else ""
        engine = build_engine(cfg, storage, args.sim_json)
        try:
            serve_or_run(args, cfg, engine, secret)
        finally:
            engine.close()
    finally:
        storage.close()


def serve_or_run(args: argparse.Namespace, cfg: Config, engine: Engine, secret: str) -> None:
    if args.serve:
        uvicorn.run(create_app(engine, secret), host=cfg.server_host, port=cfg.server_port)
        return

    if args.once:
        result = engine.run_once()
        if not args.json_logs:
            print(
                f"Strategies={result.strategies} Evaluated={result.evaluated} "
                f"Alerts={result.alerts} Skipped={result.skipped} Errors={result.errors}"
            )
        return

    logger.info("service_start interval_minutes=%d", cfg.interval_minutes)
    run_every(cfg.interval_minutes, engine.run_once)


def main() -> None:
    args = build_arg_parser().parse_args()
    setup_logging(level=args.log_level, json_logs=args.json_logs)
    try:
        run(args)
    except (ConfigError, InvalidStrategy) as exc:
        logger.error("startup_failed error=%s", str(exc))
        raise SystemExit(str(exc)) from exc


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        sys.exit(0)
