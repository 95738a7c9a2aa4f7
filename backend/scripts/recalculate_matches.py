#!/usr/bin/env python3
"""
Match Recalculation Script

Rescores one candidate against every active job, or one job against every
active candidate, and prints the ranked results with their dimension
scores. Runs in-process; no Celery worker is needed.

Run from backend directory:
    # Rescore candidate 1 against all active jobs, show the top 20
    python -m scripts.recalculate_matches --candidate 1

    # Rescore job 7 against all active candidates, show the top 5
    python -m scripts.recalculate_matches --job 7 --limit 5
"""

import asyncio
import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.config import get_settings
from app.database import async_session, init_db
from app.services.engine import BatchResult, build_match_engine
from app.services.errors import NotFoundError

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


def format_batch(batch: BatchResult, side: str) -> List[str]:
    """Render a batch as report lines, one per result plus skipped pairs."""
    lines = []
    for rank, result in enumerate(batch.results, start=1):
        other_id = result.job_id if side == "candidate" else result.candidate_id
        dims = result.dimensions
        lines.append(
            f"{rank:>3}. {'job' if side == 'candidate' else 'candidate'} {other_id}: "
            f"{result.total_score} ({result.band.value})"
            f"{' compatible' if result.compatible else ''} | "
            f"subtype={dims.subtype} accessibility={dims.accessibility} "
            f"education={dims.education} regime={dims.regime} location={dims.location}"
        )
    for skipped in batch.skipped:
        lines.append(
            f"  skipped candidate {skipped.candidate_id} / job {skipped.job_id}: "
            f"{skipped.reason} {skipped.detail}".rstrip()
        )
    lines.append(
        f"Scored {batch.computed} pairs, skipped {batch.skipped_count}, "
        f"showing {len(batch.results)}"
    )
    return lines


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Recalculate accessibility match scores")
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--candidate", type=int, help="Candidate id to rescore")
    target.add_argument("--job", type=int, help="Job id to rescore")
    parser.add_argument("--limit", type=int, help="Number of ranked results to show")
    return parser.parse_args(argv)


async def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    settings = get_settings()

    await init_db()
    # In-process run: skip Redis so the script works without it
    engine = build_match_engine(async_session, cache=None, settings=settings)

    try:
        if args.candidate is not None:
            limit = args.limit or settings.candidate_batch_limit
            logger.info(f"Recalculating matches for candidate {args.candidate}...")
            batch = await engine.recompute_for_candidate(args.candidate, limit)
            side = "candidate"
        else:
            limit = args.limit or settings.job_batch_limit
            logger.info(f"Recalculating matches for job {args.job}...")
            batch = await engine.recompute_for_job(args.job, limit)
            side = "job"

    except NotFoundError as e:
        logger.error(str(e))
        return 1

    for line in format_batch(batch, side):
        print(line)
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
