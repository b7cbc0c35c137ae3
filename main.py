"""
Main entrypoint: one-shot analytics report or the FastAPI server.

    python main.py report --identity npub1... --range 30d
    python main.py report --identity <hex> --range custom --from 2024-01-01 --to 2024-01-31
    python main.py serve

`report` runs a session until it settles (complete, or auto-load stopped by
the failure breaker) and prints the snapshot as JSON on stdout; logs go to
stderr. Exit codes: 0 complete, 1 partial (breaker tripped or timeout),
2 invalid input.

Env: ZAPLYTICS_RELAYS, ZAPLYTICS_RELAY_LIMIT, ZAPLYTICS_TIMEZONE, API_HOST, API_PORT, etc.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys

# Configure structured logging before other imports that may log
from zaplytics.zaplytics_logging import get_logger

logger = get_logger("main")

DEFAULT_REPORT_TIMEOUT_SEC = 600.0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Zap earnings analytics for Nostr identities.")
    sub = parser.add_subparsers(dest="command", required=True)

    report = sub.add_parser("report", help="Harvest receipts for one identity and print the analytics JSON.")
    report.add_argument("--identity", required=True, help="Hex pubkey or npub.")
    report.add_argument("--range", dest="time_range", default="7d", help="24h, 7d, 30d, 90d, 1y or custom.")
    report.add_argument("--from", dest="start", default=None, help="Custom range start (YYYY-MM-DD, ISO datetime or epoch).")
    report.add_argument("--to", dest="end", default=None, help="Custom range end (YYYY-MM-DD, ISO datetime or epoch).")
    report.add_argument("--relay", action="append", default=None, help="Relay URL; repeat for several. Overrides ZAPLYTICS_RELAYS.")
    report.add_argument("--limit", type=int, default=None, help="Relay page size. Overrides ZAPLYTICS_RELAY_LIMIT.")
    report.add_argument("--timeout", type=float, default=DEFAULT_REPORT_TIMEOUT_SEC, help="Give up waiting after this many seconds.")
    report.add_argument("--no-resolve", action="store_true", help="Skip target note and engagement lookups.")

    sub.add_parser("serve", help="Run the API server.")
    return parser


async def _report(args: argparse.Namespace) -> int:
    from zaplytics.agent_worker import AnalyticsOrchestrator, SessionStatus
    from zaplytics.config import get_settings

    overrides: dict[str, object] = {}
    if args.relay:
        overrides["relay_urls"] = [u.strip() for u in args.relay if u.strip()]
    if args.limit is not None:
        overrides["relay_limit"] = args.limit
    if args.no_resolve:
        overrides["resolve_content"] = False
    settings = get_settings().with_overrides(**overrides)

    orchestrator = AnalyticsOrchestrator(settings)
    custom = {"from": args.start, "to": args.end} if args.start or args.end else None
    try:
        snapshot = await orchestrator.select(args.identity, args.time_range, custom)
        try:
            snapshot = await orchestrator.wait_until_settled(timeout=args.timeout)
        except asyncio.TimeoutError:
            logger.warning("report_timeout", timeout_sec=args.timeout)
            snapshot = orchestrator.snapshot()
    finally:
        await orchestrator.close()

    print(json.dumps(snapshot.to_dict(), indent=2, sort_keys=False))
    if snapshot.status in (SessionStatus.COMPLETE, SessionStatus.AWAITING_INPUT):
        return 0
    logger.warning(
        "report_partial",
        status=snapshot.status.value,
        error=snapshot.loading_state.error if snapshot.loading_state else None,
    )
    return 1


def _serve() -> int:
    import uvicorn

    from zaplytics.api_server.app import app
    from zaplytics.config import get_settings

    settings = get_settings()
    logger.info("main_server_starting", host=settings.api_host, port=settings.api_port)
    uvicorn.run(app, host=settings.api_host, port=settings.api_port, log_level=os.getenv("LOG_LEVEL", "info").lower())
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    if args.command == "serve":
        return _serve()
    try:
        return asyncio.run(_report(args))
    except ValueError as e:
        logger.error("report_invalid_input", error=str(e))
        print(f"error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
