"""Unit tests for scan velocity scoring."""
from datetime import datetime, timedelta

from app.models.product_vote import UrgencyFlag
from app.services.velocity import calculate_velocity, urgency_for, velocity_score

NOW = datetime(2026, 3, 1, 12, 0, 0)


class TestVelocityScore:
    def test_recent_scans_weigh_more(self):
        assert velocity_score(10, 10, 0) > velocity_score(0, 10, 0)
        assert velocity_score(2, 10, 100) == 2 * 5 + 10 + 100

    def test_monotonic_in_scan_frequency(self):
        scores = [velocity_score(n, n, 50) for n in range(5)]
        assert scores == sorted(scores)


class TestUrgency:
    def test_normal(self):
        assert urgency_for(0, 0) == UrgencyFlag.NORMAL
        assert urgency_for(19, 99) == UrgencyFlag.NORMAL

    def test_trending(self):
        assert urgency_for(20, 20) == UrgencyFlag.TRENDING
        assert urgency_for(0, 100) == UrgencyFlag.TRENDING

    def test_urgent(self):
        assert urgency_for(100, 100) == UrgencyFlag.URGENT
        assert urgency_for(0, 500) == UrgencyFlag.URGENT


class TestCalculateVelocity:
    def test_window_filtering(self):
        scans = [
            NOW - timedelta(hours=1),
            NOW - timedelta(hours=23),
            NOW - timedelta(days=2),
            NOW - timedelta(days=6, hours=23),
            NOW - timedelta(days=8),  # outside the window
        ]
        metrics = calculate_velocity(scans, total_weighted_votes=25, now=NOW)

        assert metrics.scans_last_24h == 2
        assert metrics.scans_last_7d == 4
        assert metrics.velocity_score == 2 * 5 + 4 + 25
        assert metrics.urgency_flag == UrgencyFlag.NORMAL

    def test_no_scans(self):
        metrics = calculate_velocity([], total_weighted_votes=3, now=NOW)

        assert metrics.scans_last_24h == 0
        assert metrics.scans_last_7d == 0
        assert metrics.velocity_score == 3
