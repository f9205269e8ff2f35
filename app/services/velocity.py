"""Scan velocity scoring used to prioritise the testing queue."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable

from app.config import settings
from app.models.product_vote import UrgencyFlag

ONE_DAY = timedelta(days=1)
SEVEN_DAYS = timedelta(days=7)


@dataclass(frozen=True)
class VelocityMetrics:
    scans_last_24h: int
    scans_last_7d: int
    velocity_score: int
    urgency_flag: UrgencyFlag


def velocity_score(scans_last_24h: int, scans_last_7d: int, total_weighted_votes: int) -> int:
    """Recent scans count ``velocity_recent_weight`` times more than the weekly total."""
    return scans_last_24h * settings.velocity_recent_weight + scans_last_7d + total_weighted_votes


def urgency_for(scans_last_24h: int, scans_last_7d: int) -> UrgencyFlag:
    if scans_last_24h >= settings.urgent_scans_24h or scans_last_7d >= settings.urgent_scans_7d:
        return UrgencyFlag.URGENT
    if scans_last_24h >= settings.trending_scans_24h or scans_last_7d >= settings.trending_scans_7d:
        return UrgencyFlag.TRENDING
    return UrgencyFlag.NORMAL


def calculate_velocity(
    scan_times: Iterable[datetime], total_weighted_votes: int, now: datetime
) -> VelocityMetrics:
    """
    Derive velocity metrics by filtering the scan window against ``now``.

    Counts are recomputed from timestamps on every call rather than kept
    as running counters, so the window self-corrects as scans age out.
    """
    recent = [t for t in scan_times if now - t < SEVEN_DAYS]
    scans_7d = len(recent)
    scans_24h = sum(1 for t in recent if now - t < ONE_DAY)
    return VelocityMetrics(
        scans_last_24h=scans_24h,
        scans_last_7d=scans_7d,
        velocity_score=velocity_score(scans_24h, scans_7d, total_weighted_votes),
        urgency_flag=urgency_for(scans_24h, scans_7d),
    )
