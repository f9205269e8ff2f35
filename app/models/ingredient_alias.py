from sqlalchemy import Column, Integer, String, ForeignKey, Index
from sqlalchemy.orm import relationship

from app.database import Base


class IngredientAlias(Base):
    """Alternative names an ingredient goes by (e.g., "FD&C Red No. 40")."""
    __tablename__ = "ingredient_aliases"

    id = Column(Integer, primary_key=True)
    ingredient_id = Column(Integer, ForeignKey('ingredients.id', ondelete='CASCADE'), nullable=False)
    alias = Column(String(255), nullable=False)
    normalized_alias = Column(String(255), nullable=False, unique=True)

    # Relationships
    ingredient = relationship("Ingredient", back_populates="aliases")

    __table_args__ = (
        Index('idx_ingredient_aliases_ingredient_id', 'ingredient_id'),
    )
