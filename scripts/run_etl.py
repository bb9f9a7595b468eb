"""
Script to run one bounded ETL batch for the configured market

Exit codes:
    0 - batch processed, nothing pending, or runtime limit reached
    1 - missing configuration or unrecoverable error
"""

import argparse
import asyncio
import sys
import os
import logging
from datetime import date
from typing import List, Optional

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import settings
from core.exceptions import ConfigurationError, ETLException
from core.logging import setup_logging
from ingestion.runner import run_once
from ingestion.transformers.field_mapping import MARKET_PROFILES

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Process the next batch of today's ETL task queue")
    parser.add_argument(
        "--market",
        choices=sorted(MARKET_PROFILES),
        default=None,
        help=f"Market profile (default: ETL_MARKET={settings.ETL_MARKET})"
    )
    parser.add_argument(
        "--run-date",
        type=date.fromisoformat,
        default=None,
        help="Queue date as YYYY-MM-DD (default: ETL_RUN_DATE or today, UTC)"
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help=f"Entities per batch (default: ETL_BATCH_SIZE={settings.ETL_BATCH_SIZE})"
    )
    parser.add_argument(
        "--max-runtime-minutes",
        type=float,
        default=None,
        help=f"Wall-clock budget (default: ETL_MAX_RUNTIME_MINUTES={settings.ETL_MAX_RUNTIME_MINUTES})"
    )
    return parser.parse_args(argv)


async def run_etl(args: argparse.Namespace) -> int:
    """Run one batch; returns the process exit code"""
    try:
        await run_once(
            settings,
            market=args.market,
            run_date=args.run_date,
            batch_size=args.batch_size,
            max_runtime_minutes=args.max_runtime_minutes
        )
    except ConfigurationError as e:
        logger.error(f"FATAL: {e.message}", extra={"error_context": e.to_dict()})
        return 1
    except ETLException as e:
        logger.error(f"ETL batch process failed: {e.message}", extra={"error_context": e.to_dict()})
        return 1
    except Exception:
        logger.exception("ETL batch process failed")
        return 1

    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    if args.batch_size is not None and args.batch_size < 1:
        logger.error("--batch-size must be positive")
        return 1

    setup_logging()
    return asyncio.run(run_etl(args))


if __name__ == "__main__":
    sys.exit(main())
