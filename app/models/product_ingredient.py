from sqlalchemy import Column, Integer, String, ForeignKey, Index
from sqlalchemy.orm import relationship

from app.database import Base


class ProductIngredient(Base):
    """Junction table linking products to ingredients in label order."""
    __tablename__ = "product_ingredients"

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey('products.id', ondelete='CASCADE'), nullable=False)
    # Nullable so a deleted ingredient leaves an unresolvable reference behind
    ingredient_id = Column(Integer, ForeignKey('ingredients.id', ondelete='SET NULL'), nullable=True)
    ingredient_name = Column(String(255), nullable=False)  # Snapshot of the label text
    position = Column(Integer, nullable=False, default=0)

    # Relationships
    product = relationship("Product", back_populates="ingredient_links")
    ingredient = relationship("Ingredient", back_populates="product_links")

    __table_args__ = (
        Index('idx_product_ingredients_product_id', 'product_id'),
        Index('idx_product_ingredients_ingredient_id', 'ingredient_id'),
    )
