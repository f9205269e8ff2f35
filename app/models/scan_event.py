from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship

from app.database import Base


class ScanEvent(Base):
    """One scan in a barcode's rolling velocity window (last 7 days, capped)."""

    __tablename__ = "scan_events"

    id = Column(Integer, primary_key=True)
    product_vote_id = Column(Integer, ForeignKey("product_votes.id", ondelete="CASCADE"), nullable=False)
    vote_type = Column(String(20), nullable=False)  # 'scan' or 'member_scan'
    scanned_at = Column(DateTime, nullable=False)

    # Relationships
    product_vote = relationship("ProductVote", back_populates="scan_events")

    __table_args__ = (
        Index("idx_scan_events_vote_time", "product_vote_id", "scanned_at"),
    )
