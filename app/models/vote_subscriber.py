from datetime import datetime

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from app.database import Base


class VoteSubscriber(Base):
    """Someone (user id or device fingerprint) waiting for a barcode's test results."""

    __tablename__ = "vote_subscribers"

    id = Column(Integer, primary_key=True)
    product_vote_id = Column(Integer, ForeignKey("product_votes.id", ondelete="CASCADE"), nullable=False)
    subscriber_id = Column(String(255), nullable=False)
    subscribed_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    # Relationships
    product_vote = relationship("ProductVote", back_populates="subscribers")

    __table_args__ = (
        UniqueConstraint("product_vote_id", "subscriber_id", name="uq_vote_subscriber"),
    )
