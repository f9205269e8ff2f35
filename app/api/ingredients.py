"""API endpoints for the ingredient database and verdict cascades."""

import logging
from typing import List, Optional

import dramatiq
import redis
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.ingredient import Ingredient, Verdict
from app.services.cascade_service import CascadeResult
from app.services.ingredient_service import IngredientService
from app.workers.cascade_worker import cascade_ingredient_verdict

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ingredients", tags=["ingredients"])


class IngredientCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    verdict: str = Verdict.UNKNOWN.value
    reason: Optional[str] = None
    category: Optional[str] = None
    aliases: List[str] = []
    auto_flag_products: bool = Field(True, alias="autoFlagProducts")


class VerdictUpdateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    verdict: str
    reason: Optional[str] = None
    auto_flag_products: Optional[bool] = Field(None, alias="autoFlagProducts")


def ingredient_to_dict(ingredient: Ingredient) -> dict:
    return {
        "id": ingredient.id,
        "name": ingredient.name,
        "verdict": ingredient.verdict,
        "reason": ingredient.reason,
        "category": ingredient.category,
        "aliases": [alias.alias for alias in ingredient.aliases],
        "autoFlagProducts": ingredient.auto_flag_products,
        "flaggedProductCount": ingredient.flagged_product_count,
    }


def _enqueue_remaining_pages(result: CascadeResult) -> dict:
    """Hand the rest of a large cascade to the background worker."""
    data = result.to_dict()
    data["continuationQueued"] = False
    if result.has_more:
        try:
            cascade_ingredient_verdict.send(result.ingredient_id, result.next_offset)
            data["continuationQueued"] = True
        except (dramatiq.errors.DramatiqError, redis.exceptions.RedisError) as e:
            logger.error(
                "Could not enqueue cascade for ingredient %s at offset %s: %s",
                result.ingredient_id,
                result.next_offset,
                e,
            )
    return data


@router.post("", status_code=201)
async def create_ingredient(payload: IngredientCreateRequest, db: Session = Depends(get_db)):
    """Create an ingredient with optional aliases."""
    ingredient = IngredientService(db).create_ingredient(
        name=payload.name,
        verdict=payload.verdict,
        reason=payload.reason,
        aliases=payload.aliases,
        auto_flag_products=payload.auto_flag_products,
        category=payload.category,
    )
    return ingredient_to_dict(ingredient)


@router.get("/{ingredient_id}")
async def get_ingredient(ingredient_id: int, db: Session = Depends(get_db)):
    return ingredient_to_dict(IngredientService(db).get_ingredient(ingredient_id))


@router.put("/{ingredient_id}/verdict")
async def update_verdict(
    ingredient_id: int, payload: VerdictUpdateRequest, db: Session = Depends(get_db)
):
    """
    Change an ingredient's verdict and cascade it to affected products.

    The first page of products is processed inline; remaining pages are
    enqueued for the cascade worker.
    """
    result = IngredientService(db).update_verdict(
        ingredient_id,
        payload.verdict,
        reason=payload.reason,
        auto_flag_products=payload.auto_flag_products,
    )
    return _enqueue_remaining_pages(result)


@router.post("/{ingredient_id}/cascade")
async def rerun_cascade(
    ingredient_id: int,
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    """Manually re-run one cascade page for the ingredient's current verdict."""
    result = IngredientService(db).rerun_cascade(ingredient_id, offset=offset)
    return result.to_dict()
