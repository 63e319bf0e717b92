from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    # Lets the script run from a checkout without `pip install -e .`.
    sys.path.insert(0, str(SRC_DIR))

from fpl_sync.collector.api_client import FPLClient  # noqa: E402
from fpl_sync.jobs.diagnostics import run_diagnostics  # noqa: E402
from fpl_sync.jobs.sync import run_sync  # noqa: E402
from fpl_sync.utils.config import ConfigError, load_settings  # noqa: E402
from fpl_sync.utils.db import StorageError, Store  # noqa: E402
from fpl_sync.utils.logging import get_logger, setup_logging  # noqa: E402


logger = get_logger(script="run_sync_once")


async def _amain() -> int:
    setup_logging()
    parser = argparse.ArgumentParser(description="Run one FPL league sync (or the diagnostic probe)")
    parser.add_argument("--dry-run", action="store_true", help="Fetch and reconcile only, no store writes")
    parser.add_argument("--diagnose", action="store_true", help="Run the dependency diagnostic probe instead")
    parser.add_argument("--config", default=None, help="YAML config path (default: config/fpl_sync.yaml)")
    args = parser.parse_args()

    settings = load_settings(config_path=args.config)
    client = FPLClient.from_config(settings.upstream)

    store: Store | None = None
    init_error: str | None = None
    if not args.dry_run or args.diagnose:
        try:
            store = Store.from_settings(settings)
        except (ConfigError, StorageError) as e:
            init_error = str(e)
            if not args.diagnose:
                logger.error("store_init_failed", err=init_error)
                await client.aclose()
                return 2

    try:
        if args.diagnose:
            report = await run_diagnostics(settings=settings, client=client, store=store, init_error=init_error)
            print(json.dumps({"success": report.ok, "diagnostics": report.as_dict()}, indent=2, default=str))
            return 0 if report.ok else 1

        summary = await run_sync(settings=settings, client=client, store=store, dry_run=args.dry_run)
        print(
            f"[INFO] Sync complete (period={summary.period}, managers={summary.managers_processed}, "
            f"leagues={summary.league_sizes}, duration_ms={summary.duration_ms}, dry_run={summary.dry_run})"
        )
        return 0
    finally:
        await client.aclose()
        if store is not None:
            store.close()


if __name__ == "__main__":
    raise SystemExit(asyncio.run(_amain()))
