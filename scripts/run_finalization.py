"""Run one finalization sweep, or re-finalize an explicit date range.

    python scripts/run_finalization.py
    python scripts/run_finalization.py --start 2026-01-01 --end 2026-01-31
"""

from __future__ import annotations

import argparse
import importlib
import json
import logging
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from dotenv import load_dotenv

from config import get_settings_module

from src.worktime.worktime.common.datetime_utils import parse_iso_date
from src.worktime.worktime.container import build_container

logger = logging.getLogger("worktime.run_finalization")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--start", type=parse_iso_date, help="first work date (YYYY-MM-DD)")
    parser.add_argument("--end", type=parse_iso_date, help="last work date (YYYY-MM-DD)")
    args = parser.parse_args(argv)
    if (args.start is None) != (args.end is None):
        parser.error("--start and --end must be given together")
    return args


def main(argv=None) -> int:
    load_dotenv(override=False)
    args = parse_args(argv)
    settings = importlib.import_module(get_settings_module())
    logging.basicConfig(level=getattr(settings, "LOG_LEVEL", "INFO"), format="%(asctime)s %(levelname)s [%(name)s] %(message)s")

    container = build_container(db_config=dict(settings.DB_CONFIG), settings=settings)
    service = container.finalization_service
    result = service.backfill(args.start, args.end) if args.start else service.sweep()

    print(json.dumps(result.as_dict(), indent=2))
    if result.skipped:
        logger.warning("Another instance holds the finalization lease; nothing done")
        return 2
    return 1 if result.aborted else 0


if __name__ == "__main__":
    sys.exit(main())
