"""
Seed the geo hierarchy (PNG, ABG, MKA) from CSV exports.

Usage:
    python scripts/seed_geo_data.py --data-dir data [--reset] [--create-tables]
"""
import argparse
import asyncio
import logging
import os
import sys

# Add parent directory to path to import wardbucket modules
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from wardbucket.core.config import settings
from wardbucket.core.database import init_db, session_scope
from wardbucket.core.logging import setup_logging
from wardbucket.services.geo_seed import seed_from_directory

logger = logging.getLogger("seed_geo_data")


async def main(data_dir: str, reset: bool, create_tables: bool) -> int:
    await init_db(create_tables=create_tables)

    async with session_scope() as db:
        report = await seed_from_directory(db, data_dir, reset=reset)

    for kind, count in sorted(report.created.items()):
        logger.info(f"  created {count:>6} {kind}")
    if report.skipped:
        logger.warning(f"  skipped {report.skipped} rows (see warnings above)")
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--data-dir", default=settings.GEO_SEED_DATA_DIR, help="Directory holding the CSV files")
    parser.add_argument("--reset", action="store_true", help="Delete existing geo records and history first")
    parser.add_argument("--create-tables", action="store_true", help="Create missing tables before seeding")
    args = parser.parse_args()

    setup_logging()
    try:
        sys.exit(asyncio.run(main(args.data_dir, args.reset, args.create_tables)))
    except Exception:
        logger.exception("Failed to seed database")
        sys.exit(1)
