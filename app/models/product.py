from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, Index
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from app.database import Base
from app.models.ingredient import Verdict


class Product(Base):
    """Tested product with a verdict computed from its ingredients."""

    __tablename__ = "products"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    brand = Column(String(255), nullable=False)
    barcode = Column(String(64), unique=True, nullable=True)

    # Computed verdict and audit trail
    verdict = Column(String(20), nullable=False, default=Verdict.UNKNOWN.value)
    rule_applied = Column(String(255))  # e.g. "ingredient:Red Dye 40", "manual_override"
    rule_ingredient_id = Column(
        Integer, ForeignKey("ingredients.id", ondelete="SET NULL"), nullable=True
    )
    verdict_updated_at = Column(DateTime)

    # Manual override freezes the verdict against automatic recomputation
    verdict_override = Column(Boolean, nullable=False, default=False)
    verdict_override_reason = Column(Text)
    overridden_by = Column(String(255))
    overridden_at = Column(DateTime)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    ingredient_links = relationship(
        "ProductIngredient",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="ProductIngredient.position",
    )

    __table_args__ = (
        Index("idx_products_verdict", "verdict"),
    )

    @property
    def ingredient_ids(self) -> list:
        """Ingredient references in label order; None marks a deleted ingredient."""
        return [link.ingredient_id for link in self.ingredient_links]

    def __repr__(self):
        return f"<Product(id={self.id}, name={self.name!r}, verdict={self.verdict})>"
