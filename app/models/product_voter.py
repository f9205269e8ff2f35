from datetime import datetime

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint, Index
from sqlalchemy.orm import relationship

from app.database import Base


class ProductVoter(Base):
    """Unique device fingerprints that voted on a barcode."""

    __tablename__ = "product_voters"

    id = Column(Integer, primary_key=True)
    product_vote_id = Column(Integer, ForeignKey("product_votes.id", ondelete="CASCADE"), nullable=False)
    fingerprint = Column(String(255), nullable=False)
    first_voted_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    voter_rank = Column(Integer)  # 1 for the first fingerprint to vote on the barcode

    # Relationships
    product_vote = relationship("ProductVote", back_populates="voters")

    __table_args__ = (
        UniqueConstraint("product_vote_id", "fingerprint", name="uq_product_voter"),
        Index("idx_product_voters_fingerprint", "fingerprint"),
    )
