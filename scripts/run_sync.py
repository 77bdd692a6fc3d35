#!/usr/bin/env python3
"""CLI script to run one delta sync per platform.

Usage:
    uv run python scripts/run_sync.py                      # every platform with an API key
    uv run python scripts/run_sync.py --platform lemlist
    uv run python scripts/run_sync.py --platform smartlead --full

Intended to be invoked by cron or any external scheduler. Exits non-zero if
any platform run failed outright (campaign list unavailable, bad API key).
Reads DATABASE_URL and the platform API keys from environment or .env file.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys

# Ensure project root is on sys.path so we can import src.outreach
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from dotenv import load_dotenv  # noqa: E402

load_dotenv(os.path.join(os.path.dirname(__file__), "..", ".env"))

import structlog  # noqa: E402

logger = structlog.get_logger(__name__)


async def run(platforms: list[str] | None, full_sync: bool) -> int:
    """Run the requested platforms sequentially; return the process exit code."""
    from src.outreach.config import get_settings
    from src.outreach.core.database import close_db, get_engine, init_db
    from src.outreach.core.exceptions import OutreachSyncError
    from src.outreach.core.logging import configure_structlog
    from src.outreach.sync.factory import build_sync_adapter, build_sync_adapters

    configure_structlog()
    settings = get_settings()
    await init_db()
    engine = get_engine()

    exit_code = 0
    try:
        adapters = {} if platforms else build_sync_adapters(settings, engine)
        targets = platforms or list(adapters)

        if not targets:
            logger.warning("run_sync.no_platforms_configured")
            return 1

        for platform in targets:
            try:
                adapter = adapters.get(platform) or build_sync_adapter(platform, settings, engine)
                report = await adapter.run(full_sync=full_sync)
            except OutreachSyncError as exc:
                logger.error("run_sync.platform_failed", platform=platform, error=str(exc))
                exit_code = 1
                continue
            summary = report.model_dump(mode="json", exclude={"errors"})
            summary.update(processed=report.processed, skipped=report.skipped, error_count=len(report.errors))
            print(json.dumps(summary, indent=2))
    finally:
        await close_db()

    return exit_code


def main() -> None:
    parser = argparse.ArgumentParser(description="Run Smartlead/Lemlist delta sync")
    parser.add_argument(
        "--platform",
        dest="platforms",
        action="append",
        choices=["smartlead", "lemlist"],
        help="Platform to sync; repeat for several (default: every configured platform)",
    )
    parser.add_argument("--full", action="store_true", help="Ignore the cursor and re-examine every record")
    args = parser.parse_args()

    sys.exit(asyncio.run(run(args.platforms, args.full)))


if __name__ == "__main__":
    main()
