"""VoteStatusChange model for the testing-request timeline."""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship
from app.database import Base


class VoteStatusChange(Base):
    """Records each status transition of a ProductVote, including admin resets."""

    __tablename__ = "vote_status_changes"

    id = Column(Integer, primary_key=True, index=True)
    product_vote_id = Column(Integer, ForeignKey("product_votes.id", ondelete="CASCADE"), nullable=False, index=True)
    from_status = Column(String(30), nullable=True)  # None for the initial record
    to_status = Column(String(30), nullable=False)
    changed_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    notes = Column(Text, nullable=True)

    # Relationships
    product_vote = relationship("ProductVote", back_populates="status_history")

    def __repr__(self):
        return f"<VoteStatusChange({self.from_status} -> {self.to_status})>"
