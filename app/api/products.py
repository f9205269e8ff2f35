"""API endpoints for products, verdict recomputation and overrides."""

from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.product import Product
from app.services.product_service import ProductService
from app.services.vote_service import VoteService, vote_to_dict

router = APIRouter(prefix="/products", tags=["products"])


class ProductCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    brand: str
    barcode: Optional[str] = None
    ingredient_ids: Optional[List[int]] = Field(None, alias="ingredientIds")
    ingredients_text: Optional[str] = Field(None, alias="ingredientsText")
    create_missing: bool = Field(False, alias="createMissing")


class OverrideRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    verdict: str
    reason: str
    overridden_by: Optional[str] = Field(None, alias="overriddenBy")


class CompleteTestingRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    barcode: str
    product_id: int = Field(..., alias="productId")


def product_to_dict(product: Product) -> dict:
    return {
        "id": product.id,
        "name": product.name,
        "brand": product.brand,
        "barcode": product.barcode,
        "verdict": product.verdict,
        "ruleApplied": product.rule_applied,
        "ruleIngredientId": product.rule_ingredient_id,
        "verdictUpdatedAt": product.verdict_updated_at.isoformat() if product.verdict_updated_at else None,
        "verdictOverride": product.verdict_override,
        "verdictOverrideReason": product.verdict_override_reason,
        "overriddenBy": product.overridden_by,
        "ingredients": [
            {
                "ingredientId": link.ingredient_id,
                "name": link.ingredient_name,
                "position": link.position,
            }
            for link in product.ingredient_links
        ],
    }


@router.post("", status_code=201)
async def create_product(payload: ProductCreateRequest, db: Session = Depends(get_db)):
    """Create a product from ingredient ids or raw label text and resolve its verdict."""
    product = ProductService.create_product(
        db,
        name=payload.name,
        brand=payload.brand,
        barcode=payload.barcode,
        ingredient_ids=payload.ingredient_ids,
        ingredients_text=payload.ingredients_text,
        create_missing=payload.create_missing,
    )
    return product_to_dict(product)


# Registered before /{product_id} routes so the literal path wins
@router.post("/test-complete")
async def test_complete(payload: CompleteTestingRequest, db: Session = Depends(get_db)):
    """Lab callback: testing finished, link the tested product to its vote."""
    vote = VoteService(db).complete_testing(payload.barcode, payload.product_id)
    return vote_to_dict(vote, include_history=True)


@router.get("/{product_id}")
async def get_product(product_id: int, db: Session = Depends(get_db)):
    return product_to_dict(ProductService.get_product(db, product_id))


@router.post("/{product_id}/recompute")
async def recompute_verdict(product_id: int, db: Session = Depends(get_db)):
    product = ProductService.get_product(db, product_id)
    resolution = ProductService.recompute_verdict(db, product)
    return {
        "changed": resolution.changed,
        "verdict": resolution.verdict.value,
        "ruleApplied": resolution.rule_applied,
        "skipped": resolution.skipped,
    }


@router.put("/{product_id}/override")
async def set_override(product_id: int, payload: OverrideRequest, db: Session = Depends(get_db)):
    product = ProductService.set_override(
        db, product_id, payload.verdict, payload.reason, overridden_by=payload.overridden_by
    )
    return product_to_dict(product)


@router.delete("/{product_id}/override")
async def clear_override(product_id: int, db: Session = Depends(get_db)):
    return product_to_dict(ProductService.clear_override(db, product_id))
