"""
Verifier command-line entrypoint.

    python -m verifier.main verify --name "Acme Corp" --registration 12345678
    python -m verifier.main submit --name "Acme Corp" --location London
    python -m verifier.main stats [--detailed]

Uses Redis when --redis is passed, in-memory state otherwise. Prints JSON.
"""
from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Optional, Sequence

# Ensure backend root is on path when run as python -m verifier.main
_backend = Path(__file__).resolve().parent.parent
if str(_backend) not in sys.path:
    sys.path.insert(0, str(_backend))

from shared.config import get_settings
from shared.utils.logging import get_logger, setup_logging
from shared.utils.metrics import start_metrics_server
from shared.utils.redis_manager import RedisManager

from verifier.errors import VerificationError
from verifier.service import VerificationService, build_service

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="verifier", description="Company trust verification")
    parser.add_argument("--redis", action="store_true", help="use the configured Redis instead of memory")
    parser.add_argument("--metrics", action="store_true", help="expose Prometheus metrics while running")
    parser.add_argument("--log-level", help="override TV_LOG_LEVEL")
    parser.add_argument("--json-logs", action="store_true", default=None, help="emit JSON log records")
    commands = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (("verify", "verify a company and wait for the result"),
                            ("submit", "submit an async job and poll it to completion")):
        cmd = commands.add_parser(name, help=help_text)
        cmd.add_argument("--name", required=True)
        cmd.add_argument("--registration", dest="registration_number")
        cmd.add_argument("--location")
        cmd.add_argument("--industry")
        cmd.add_argument("--linkedin-id", dest="linkedin_id")
        cmd.add_argument("--website")

    stats = commands.add_parser("stats", help="print aggregate statistics")
    stats.add_argument("--detailed", action="store_true")
    return parser


def _subject(args: argparse.Namespace) -> dict[str, Any]:
    fields = ("name", "registration_number", "location", "industry", "linkedin_id", "website")
    return {f: getattr(args, f) for f in fields if getattr(args, f) is not None}


async def run_command(service: VerificationService, args: argparse.Namespace) -> Any:
    if args.command == "verify":
        return (await service.verify(_subject(args))).model_dump(mode="json")
    if args.command == "submit":
        job_id = await service.submit_verification(_subject(args))
        record = await service.jobs.wait(job_id)
        return record.model_dump(mode="json")
    if args.detailed:
        return (await service.get_detailed_stats()).model_dump(mode="json")
    return (await service.get_stats()).model_dump(mode="json")


async def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging("verifier", level=args.log_level, json_logs=args.json_logs)
    settings = get_settings()

    if args.metrics and settings.metrics_enabled:
        start_metrics_server(settings.metrics_port)

    redis: Optional[RedisManager] = None
    if args.redis:
        redis = RedisManager(settings)
        try:
            await redis.connect()
        except Exception as e:
            logger.exception("startup_connect_failed", error=str(e))
            raise

    service = build_service(settings, redis=redis)
    await service.start()
    try:
        output = await run_command(service, args)
        exit_code = 0
    except VerificationError as exc:
        output = exc.to_dict()
        exit_code = 1
    finally:
        await service.close()
        if redis is not None:
            await redis.disconnect()

    print(json.dumps(output, indent=2))
    return exit_code


def cli() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
