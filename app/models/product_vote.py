import enum

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Index
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from app.database import Base


class VoteType(str, enum.Enum):
    """User action that produced a vote."""
    SEARCH = "search"  # Curiosity signal
    SCAN = "scan"  # Proof of possession
    MEMBER_SCAN = "member_scan"  # Verified member possession


class VoteStatus(str, enum.Enum):
    """Lifecycle of a crowd-funded testing request, in order."""
    COLLECTING_VOTES = "collecting_votes"
    THRESHOLD_REACHED = "threshold_reached"
    QUEUED = "queued"
    TESTING = "testing"
    COMPLETE = "complete"


class UrgencyFlag(str, enum.Enum):
    NORMAL = "normal"
    TRENDING = "trending"
    URGENT = "urgent"


OPEN_STATUSES = (VoteStatus.COLLECTING_VOTES.value, VoteStatus.THRESHOLD_REACHED.value)


class ProductVote(Base):
    """Weighted testing votes for an untested barcode ("proof of possession")."""

    __tablename__ = "product_votes"

    id = Column(Integer, primary_key=True)
    barcode = Column(String(64), nullable=False, unique=True, index=True)
    product_name = Column(String(255))  # If known from the voter's device or a lookup
    brand = Column(String(255))
    image_url = Column(Text)

    # Voting metrics (updated with atomic SQL increments only)
    total_weighted_votes = Column(Integer, nullable=False, default=0)
    search_count = Column(Integer, nullable=False, default=0)
    scan_count = Column(Integer, nullable=False, default=0)
    member_scan_count = Column(Integer, nullable=False, default=0)
    unique_voters = Column(Integer, nullable=False, default=0)
    funding_threshold = Column(Integer, nullable=False, default=1000)

    # Lifecycle
    status = Column(String(30), nullable=False, default=VoteStatus.COLLECTING_VOTES.value)
    threshold_reached_at = Column(DateTime)
    linked_product_id = Column(
        Integer, ForeignKey("products.id", ondelete="SET NULL"), nullable=True
    )  # Set once testing is complete
    results_notified_at = Column(DateTime)  # Guards the one-shot results notification

    # Velocity (recomputed from the scan_events window)
    scans_last_24h = Column(Integer, nullable=False, default=0)
    scans_last_7d = Column(Integer, nullable=False, default=0)
    velocity_score = Column(Integer, nullable=False, default=0)
    urgency_flag = Column(String(20), nullable=False, default=UrgencyFlag.NORMAL.value)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    linked_product = relationship("Product")
    voters = relationship("ProductVoter", back_populates="product_vote", cascade="all, delete-orphan")
    subscribers = relationship("VoteSubscriber", back_populates="product_vote", cascade="all, delete-orphan")
    scan_events = relationship("ScanEvent", back_populates="product_vote", cascade="all, delete-orphan")
    status_history = relationship(
        "VoteStatusChange",
        back_populates="product_vote",
        cascade="all, delete-orphan",
        order_by="VoteStatusChange.id",
    )

    __table_args__ = (
        Index("idx_product_votes_status", "status"),
        Index("idx_product_votes_total", "total_weighted_votes"),
        Index("idx_product_votes_velocity", "velocity_score"),
    )

    @property
    def funding_progress(self) -> int:
        """Percentage progress toward the testing threshold (0-100)."""
        threshold = self.funding_threshold or 1
        # Round half up
        return min(100, int((self.total_weighted_votes or 0) * 100 / threshold + 0.5))

    def __repr__(self):
        return f"<ProductVote(barcode={self.barcode}, total={self.total_weighted_votes}, status={self.status})>"
