"""
Factory functions for creating test data.

These factories create model instances with sensible defaults.
Use db.flush() to get IDs without committing (for transaction rollback).
"""

from datetime import datetime
from typing import List, Optional
import secrets

from sqlalchemy.orm import Session

from app.models import (
    Ingredient,
    IngredientAlias,
    Product,
    ProductIngredient,
    ProductVote,
    Verdict,
    VoteStatus,
    VoteStatusChange,
)


# =============================================================================
# Ingredient Factory
# =============================================================================


def create_ingredient(
    db: Session,
    name: Optional[str] = None,
    verdict: str = Verdict.UNKNOWN.value,
    aliases: Optional[List[str]] = None,
    auto_flag_products: bool = True,
    **overrides,
) -> Ingredient:
    """
    Create a test ingredient.

    Args:
        db: Database session
        name: Display name (auto-generated if not provided)
        verdict: Verdict value string
        aliases: Alternative names
        auto_flag_products: Whether verdict changes cascade
        **overrides: Additional fields to override

    Returns:
        Created Ingredient object
    """
    if name is None:
        name = f"ingredient {secrets.token_hex(4)}"

    ingredient = Ingredient(
        name=name,
        normalized_name=Ingredient.normalize_name(name),
        verdict=verdict,
        auto_flag_products=auto_flag_products,
        flagged_product_count=0,
        **overrides,
    )
    for alias in aliases or []:
        ingredient.aliases.append(
            IngredientAlias(alias=alias, normalized_alias=Ingredient.normalize_name(alias))
        )
    db.add(ingredient)
    db.flush()
    return ingredient


# =============================================================================
# Product Factory
# =============================================================================


def create_product(
    db: Session,
    name: Optional[str] = None,
    brand: str = "Test Brand",
    ingredients: Optional[List[Ingredient]] = None,
    verdict: str = Verdict.UNKNOWN.value,
    rule_applied: Optional[str] = None,
    **overrides,
) -> Product:
    """
    Create a test product linked to ingredients in the given order.

    The stored verdict is NOT resolved; tests call the service for that.
    """
    if name is None:
        name = f"Product {secrets.token_hex(4)}"

    product = Product(
        name=name,
        brand=brand,
        verdict=verdict,
        rule_applied=rule_applied,
        verdict_override=overrides.pop("verdict_override", False),
        **overrides,
    )
    for position, ingredient in enumerate(ingredients or []):
        product.ingredient_links.append(
            ProductIngredient(
                ingredient_id=ingredient.id,
                ingredient_name=ingredient.name,
                position=position,
            )
        )
    db.add(product)
    db.flush()
    return product


# =============================================================================
# ProductVote Factory
# =============================================================================


def create_product_vote(
    db: Session,
    barcode: Optional[str] = None,
    total_weighted_votes: int = 0,
    status: str = VoteStatus.COLLECTING_VOTES.value,
    funding_threshold: int = 1000,
    product_name: Optional[str] = None,
    **overrides,
) -> ProductVote:
    """Create a testing request directly in the given status."""
    if barcode is None:
        barcode = f"{secrets.randbelow(10**12):013d}"

    vote = ProductVote(
        barcode=barcode,
        product_name=product_name,
        total_weighted_votes=total_weighted_votes,
        funding_threshold=funding_threshold,
        status=status,
        **overrides,
    )
    db.add(vote)
    db.flush()
    db.add(VoteStatusChange(
        product_vote_id=vote.id,
        from_status=None,
        to_status=status,
        changed_at=datetime.utcnow(),
    ))
    db.flush()
    return vote
