"""CLI commands for verdict cascades and testing-request maintenance."""

import argparse
import sys

from sqlalchemy.orm import Session

from app.database import SessionLocal
from app.services.errors import DomainError
from app.services.ingredient_service import IngredientService
from app.services.vote_service import VoteService


def run_cascade(ingredient_id: int) -> None:
    """Cascade an ingredient's current verdict across every page of products."""
    db: Session = SessionLocal()

    try:
        service = IngredientService(db)
        offset = 0
        updated = processed = failed = 0
        while True:
            result = service.rerun_cascade(ingredient_id, offset=offset)
            updated += result.flagged_count
            processed += result.processed
            failed += len(result.errors)
            if not result.has_more:
                break
            offset = result.next_offset

        print(f"Cascade complete: {updated} of {processed} products updated, {failed} errors")

    except DomainError as e:
        print(f"Error: {e}")
        sys.exit(1)
    finally:
        db.close()


def refresh_velocity() -> None:
    """Recompute scan velocity for open testing requests (run from cron)."""
    db: Session = SessionLocal()

    try:
        count = VoteService(db).refresh_velocity()
        print(f"Refreshed velocity for {count} testing requests")
    finally:
        db.close()


def reset_vote(barcode: str, reset_votes: bool = False) -> None:
    """Send a testing request back to collecting_votes."""
    db: Session = SessionLocal()

    try:
        vote = VoteService(db).admin_reset(barcode, reset_votes=reset_votes, notes="Reset via CLI")
        print(f"Reset {vote.barcode}: status={vote.status}, total={vote.total_weighted_votes}")

    except DomainError as e:
        print(f"Error: {e}")
        sys.exit(1)
    finally:
        db.close()


def main():
    parser = argparse.ArgumentParser(description="Product safety verdicts CLI")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # cascade command
    cascade_parser = subparsers.add_parser(
        "cascade", help="Re-run an ingredient verdict cascade over all products"
    )
    cascade_parser.add_argument(
        "--ingredient-id", type=int, required=True, help="Ingredient to cascade"
    )

    # refresh-velocity command
    subparsers.add_parser(
        "refresh-velocity", help="Recompute scan velocity for open testing requests"
    )

    # reset-vote command
    reset_parser = subparsers.add_parser(
        "reset-vote", help="Reset a testing request to collecting_votes"
    )
    reset_parser.add_argument("--barcode", required=True, help="Product barcode")
    reset_parser.add_argument(
        "--reset-votes", action="store_true", help="Also clear counters, voters and scans"
    )

    args = parser.parse_args()

    if args.command == "cascade":
        run_cascade(args.ingredient_id)
    elif args.command == "refresh-velocity":
        refresh_velocity()
    elif args.command == "reset-vote":
        reset_vote(args.barcode, args.reset_votes)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
