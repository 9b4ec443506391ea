"""
Print an agent's trails as JSON from the configured database.

    DATABASE_URL=postgresql://... python scripts/export_trails.py -u agent007
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from missioncontrol.dependencies import get_db_client
from missioncontrol.trails import build_trails

logger = logging.getLogger(__name__)


def export_trails(db, username: str, *, flatten: bool = False) -> list[dict] | None:
    user = db.get_user_by_username(username)
    if user is None:
        return None
    trails = build_trails(db.get_user_pings(user.id), flatten=flatten)
    return [trail.as_dict() for trail in trails]


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Export an agent's trails as JSON")
    parser.add_argument(
        "-u",
        "--username",
        required=True,
        help="Agent username",
    )
    parser.add_argument(
        "--flatten",
        action="store_true",
        help="Attach replies to replies to their nearest root",
    )
    parser.add_argument(
        "--indent",
        type=int,
        default=2,
        help="JSON indent (0 for compact output)",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(message)s")
    db = get_db_client()
    payload = export_trails(db, args.username, flatten=args.flatten)
    if payload is None:
        logger.error("Unknown agent: %s", args.username)
        return 1

    json.dump(payload, sys.stdout, indent=args.indent or None)
    sys.stdout.write("\n")
    logger.info("Exported %d trails", len(payload))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
