"""Finalize closed elections from the command line and print the promotions."""

from __future__ import annotations

import argparse
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Any

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def parse_args() -> argparse.Namespace:
    """Parse CLI arguments."""
    parser = argparse.ArgumentParser(
        description="Finalize completed elections and apply Leader/Admin promotions.",
    )
    parser.add_argument(
        "election_ids",
        nargs="*",
        help="Elections to finalize. Defaults to every completed, unfinalized election.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="List the elections that would be finalized without changing anything.",
    )
    return parser.parse_args()


def print_outcome(outcome: dict[str, Any]) -> None:
    """Print one finalization result."""
    print(f"Election {outcome['election_id']} finalized ({outcome['total_votes']} ballots)")
    for promotion in outcome["promotions"]:
        print(
            f"  #{promotion['rank'] + 1} {promotion['full_name'] or promotion['user_id']}"
            f" -> {promotion['role']} ({promotion['votes']} votes)"
        )
    for notice in outcome["tie_notices"]:
        print(f"  [{notice['severity']}] {notice['message']}")


def run(election_ids: Sequence[str], dry_run: bool) -> int:
    """Finalize the given (or all pending) elections; return the exit code."""
    from app.services.finalization_service import FinalizationService
    from app.utils.errors import AppError
    from app.utils.supabase_client import get_service_client

    service = FinalizationService(get_service_client())
    targets = list(election_ids) or [str(row["id"]) for row in service.pending()]
    if dry_run:
        for election_id in targets:
            print(election_id)
        return 0

    failures = 0
    for election_id in targets:
        try:
            print_outcome(service.finalize(election_id))
        except AppError as exc:
            print(f"Election {election_id}: {exc.message} ({exc.code})", file=sys.stderr)
            failures += 1
    return 1 if failures else 0


def main() -> None:
    """CLI entry point."""
    args = parse_args()
    sys.exit(run(args.election_ids, args.dry_run))


if __name__ == "__main__":
    main()
