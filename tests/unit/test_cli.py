"""
Unit tests for CLI commands.

Tests the command-line interface for cascade and vote maintenance.
"""
import pytest
from datetime import datetime
from unittest.mock import patch
from sqlalchemy.orm import Session

from app.cli import main, refresh_velocity, reset_vote, run_cascade
from app.config import settings
from app.models import Product, ProductVote, Verdict, VoteStatus
from tests.factories import create_ingredient, create_product, create_product_vote


# =============================================================================
# run_cascade Tests
# =============================================================================

class TestRunCascade:
    """Tests for the run_cascade function."""

    def test_cascades_all_pages(self, db: Session, monkeypatch):
        monkeypatch.setattr(settings, "cascade_page_size", 2)
        red = create_ingredient(db, name="Red Dye 40", verdict=Verdict.AVOID.value)
        red_id = red.id
        product_ids = [create_product(db, ingredients=[red]).id for _ in range(5)]

        with patch('app.cli.SessionLocal', return_value=db), \
             patch('builtins.print') as mock_print:
            run_cascade(red_id)

        mock_print.assert_called_with("Cascade complete: 5 of 5 products updated, 0 errors")
        assert all(
            db.query(Product).filter(Product.id == pid).one().verdict == Verdict.AVOID.value
            for pid in product_ids
        )

    def test_unknown_ingredient_exits(self, db: Session):
        with patch('app.cli.SessionLocal', return_value=db), \
             patch('builtins.print') as mock_print, \
             pytest.raises(SystemExit) as exc_info:
            run_cascade(424242)

        assert exc_info.value.code == 1
        assert "not found" in str(mock_print.call_args)


# =============================================================================
# Vote maintenance Tests
# =============================================================================

class TestVoteCommands:
    """Tests for refresh_velocity and reset_vote."""

    def test_refresh_velocity(self, db: Session):
        create_product_vote(db, barcode="1100000000001")

        with patch('app.cli.SessionLocal', return_value=db), \
             patch('builtins.print') as mock_print:
            refresh_velocity()

        assert "Refreshed velocity for 1 testing requests" in str(mock_print.call_args)

    def test_reset_vote(self, db: Session):
        create_product_vote(
            db, barcode="1100000000002", total_weighted_votes=1500,
            status=VoteStatus.THRESHOLD_REACHED.value, threshold_reached_at=datetime(2026, 1, 1),
        )

        with patch('app.cli.SessionLocal', return_value=db), \
             patch('builtins.print'):
            reset_vote("1100000000002", reset_votes=True)

        vote = db.query(ProductVote).filter(ProductVote.barcode == "1100000000002").one()
        assert vote.status == VoteStatus.COLLECTING_VOTES.value
        assert vote.total_weighted_votes == 0

    def test_reset_unknown_barcode_exits(self, db: Session):
        with patch('app.cli.SessionLocal', return_value=db), \
             patch('builtins.print'), \
             pytest.raises(SystemExit) as exc_info:
            reset_vote("does-not-exist")

        assert exc_info.value.code == 1


# =============================================================================
# main() Tests
# =============================================================================

class TestMain:
    """Tests for argument parsing."""

    def test_no_command_prints_help(self):
        with patch('sys.argv', ['verdicts']), \
             patch('argparse.ArgumentParser.print_help') as mock_help, \
             pytest.raises(SystemExit) as exc_info:
            main()

        mock_help.assert_called_once()
        assert exc_info.value.code == 1

    def test_cascade_command(self):
        with patch('sys.argv', ['verdicts', 'cascade', '--ingredient-id', '12']), \
             patch('app.cli.run_cascade') as mock_cascade:
            main()

        mock_cascade.assert_called_once_with(12)

    def test_reset_vote_command(self):
        with patch('sys.argv', ['verdicts', 'reset-vote', '--barcode', '123', '--reset-votes']), \
             patch('app.cli.reset_vote') as mock_reset:
            main()

        mock_reset.assert_called_once_with('123', True)

    def test_refresh_velocity_command(self):
        with patch('sys.argv', ['verdicts', 'refresh-velocity']), \
             patch('app.cli.refresh_velocity') as mock_refresh:
            main()

        mock_refresh.assert_called_once_with()
