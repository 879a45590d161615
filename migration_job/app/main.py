from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI

from migration_job.app.api.routes.migration import router as migration_router
from migration_job.app.core.errors import MalformedInputError
from migration_job.app.core.settings import Settings
from migration_job.app.services.pipeline import MigrationPipeline

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"


def configure_logging(level: str) -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)


app = FastAPI(title="User Graph Migration Service", version="0.1.0")
app.include_router(migration_router, prefix="/datamigration", tags=["Migration"])


@app.get("/health")
def health() -> Dict[str, Any]:
    return {"status": "ok"}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="User graph migration CLI")
    parser.add_argument("command", choices=["onboard", "relations", "serve"], help="What to run")
    parser.add_argument("file", nargs="?", help="CSV file to migrate (onboard/relations)")
    parser.add_argument("--env-file", default=os.getenv("ENV_FILE", ".env"))
    parser.add_argument("--source-backend", choices=["cassandra", "json"], default=None)
    parser.add_argument("--graph-sink", choices=["neo4j", "json"], default=None)
    parser.add_argument("--source-data-dir", default=None)
    parser.add_argument("--out-dir", default=None)
    parser.add_argument("--batch-size", type=int, default=None)
    parser.add_argument("--workers", type=int, default=None)
    parser.add_argument("--log-level", default=None)
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    return parser


def settings_from_args(args: argparse.Namespace) -> Settings:
    overrides: Dict[str, Any] = {}
    if args.source_backend:
        overrides["source_backend"] = args.source_backend
    if args.graph_sink:
        overrides["graph_sink"] = args.graph_sink
    if args.source_data_dir:
        overrides["source_data_dir"] = Path(args.source_data_dir)
    if args.out_dir:
        overrides["out_dir"] = Path(args.out_dir)
    if args.batch_size:
        overrides["batch_size"] = args.batch_size
    if args.workers:
        overrides["max_workers"] = args.workers
    if args.log_level:
        overrides["log_level"] = args.log_level
    return Settings(**overrides)


def cli(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    env_path = Path(args.env_file)
    if env_path.exists():
        load_dotenv(env_path)

    settings = settings_from_args(args)
    configure_logging(settings.log_level)
    if env_path.exists():
        logger.info(f"Loaded .env from {env_path}")

    if args.command == "serve":
        uvicorn.run(app, host=args.host, port=args.port)
        return 0
    if not args.file:
        logger.error(f"'{args.command}' needs a FILE argument")
        return 2

    pipeline = MigrationPipeline(settings)
    try:
        with open(args.file, "r", encoding="utf-8-sig", newline="") as f:
            if args.command == "onboard":
                report = pipeline.onboard_users(f)
            else:
                report = pipeline.update_relations(f)
    except MalformedInputError as e:
        logger.error(f"Malformed input {args.file}: {e}")
        return 2
    finally:
        pipeline.close()

    print(json.dumps(report.model_dump(mode="json"), ensure_ascii=False, indent=2))
    return 0 if report.status == "success" else 1


if __name__ == "__main__":
    sys.exit(cli())
