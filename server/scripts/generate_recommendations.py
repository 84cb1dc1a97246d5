#!/usr/bin/env python3
"""
Regenerate interest clusters and precomputed recommendations for flagged users.

Meant to run periodically (cron / scheduler). Backends come from .env
(DATA_SOURCE, VECTOR_BACKEND, ...), parameters from RECOMMENDER_CONFIG_PATH,
with command-line overrides.

Usage:
  From repo root:
    python -m server.scripts.generate_recommendations

  Optional:
    --user-id u1 --user-id u2   regenerate these users instead of flagged ones
    --concurrency 8
    --candidate-limit 200
    --seed 0
    --log-level DEBUG

Exit status: 0 when every user succeeded, 1 on configuration errors or when
listing users failed, 2 when some users failed.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

_REPO_ROOT = Path(__file__).resolve().parent.parent.parent
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from server.config import get_config
from server.state import AppState

logger = logging.getLogger("server.scripts.generate_recommendations")


def main() -> int:
    parser = argparse.ArgumentParser(description="Regenerate precomputed recommendations")
    parser.add_argument(
        "--user-id",
        action="append",
        dest="user_ids",
        default=None,
        help="Regenerate this user (repeatable). Default: every user flagged for regeneration",
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help="Users processed concurrently (default: BATCH_CONCURRENCY or config)",
    )
    parser.add_argument(
        "--candidate-limit",
        type=int,
        default=None,
        help="Recommendations stored per user (default: config, 200)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Base seed for clustering (default: CLUSTER_SEED or config, 0)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (default: LOG_LEVEL env, INFO)",
    )
    args = parser.parse_args()

    config = get_config()
    logging.basicConfig(
        level=(args.log_level or config.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    ok, errors = config.validate()
    if not ok:
        for e in errors:
            print(f"Config error: {e}", file=sys.stderr)
        return 1

    rc = config.load_recommender_config()
    batch_updates = {}
    if args.concurrency is not None:
        batch_updates["concurrency"] = args.concurrency
    if args.candidate_limit is not None:
        batch_updates["candidate_limit"] = args.candidate_limit
    if args.seed is not None:
        batch_updates["seed"] = args.seed
    if batch_updates:
        try:
            batch = rc.batch.model_validate({**rc.batch.model_dump(), **batch_updates})
        except ValueError as e:
            print(f"Invalid batch option: {e}", file=sys.stderr)
            return 1
        rc = rc.model_copy(update={"batch": batch})

    state = AppState(config, rc)
    try:
        summary = asyncio.run(state.regeneration_job.run(args.user_ids))
    except Exception:
        logger.exception("[batch] LIST_USERS_FAILED")
        return 1

    print(f"Regenerated: {summary.success_count} succeeded, {summary.fail_count} failed")
    return 0 if summary.fail_count == 0 else 2


if __name__ == "__main__":
    sys.exit(main())
