import enum
import re

from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, Index
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from app.database import Base


class Verdict(str, enum.Enum):
    """Safety classification shared by ingredients and products."""
    SAFE = "safe"
    CAUTION = "caution"
    AVOID = "avoid"
    UNKNOWN = "unknown"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]

    @classmethod
    def parse(cls, value) -> "Verdict":
        """Parse a verdict string, accepting 'flagged' as a synonym for avoid."""
        if isinstance(value, cls):
            return value
        normalized = (value or "").strip().lower()
        if normalized == "flagged":
            return cls.AVOID
        return cls(normalized)


_SEVERITY = {
    Verdict.UNKNOWN: 0,
    Verdict.SAFE: 1,
    Verdict.CAUTION: 2,
    Verdict.AVOID: 3,
}


class Ingredient(Base):
    """Ingredient master table; verdict changes cascade to products."""
    __tablename__ = "ingredients"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False, unique=True)  # Display name (e.g., "Red Dye 40")
    normalized_name = Column(String(255), nullable=False, unique=True, index=True)
    verdict = Column(String(20), nullable=False, default=Verdict.UNKNOWN.value)
    reason = Column(Text)  # Brief explanation of the verdict
    category = Column(String(100))  # e.g., "artificial_colors", "preservatives"
    auto_flag_products = Column(Boolean, nullable=False, default=True)
    flagged_product_count = Column(Integer, nullable=False, default=0)  # Derived by the cascade
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    aliases = relationship("IngredientAlias", back_populates="ingredient", cascade="all, delete-orphan")
    product_links = relationship("ProductIngredient", back_populates="ingredient", passive_deletes=True)

    __table_args__ = (
        Index('idx_ingredients_verdict', 'verdict'),
    )

    @staticmethod
    def normalize_name(name: str) -> str:
        """Normalize ingredient name for consistent matching."""
        return re.sub(r"\s+", " ", name.lower().strip())

    def __repr__(self):
        return f"<Ingredient(id={self.id}, name={self.name!r}, verdict={self.verdict})>"
