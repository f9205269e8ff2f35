"""
Dramatiq worker for ingredient verdict cascades too large for one request.

The API handles the first page of a cascade inline; each later page is a
separate message so a cascade over thousands of products never holds a
single long transaction.
"""
import logging

import dramatiq

# Import broker setup (must be before actor definitions)
from app.workers import redis_broker
from app.database import SessionLocal
from app.services.errors import NotFoundError
from app.services.ingredient_service import IngredientService

logger = logging.getLogger(__name__)


@dramatiq.actor(max_retries=3, min_backoff=5000, max_backoff=60000)
def cascade_ingredient_verdict(ingredient_id: int, offset: int = 0):
    """
    Re-resolve one page of products containing an ingredient.

    Enqueues the following page while more products remain.

    Args:
        ingredient_id: Ingredient whose current verdict is cascaded
        offset: Product offset of the page to process
    """
    db = SessionLocal()
    try:
        try:
            result = IngredientService(db).rerun_cascade(ingredient_id, offset=offset)
        except NotFoundError:
            logger.warning("Cascade dropped: ingredient %s no longer exists", ingredient_id)
            return

        logger.info(
            "Cascade page for ingredient %s at offset %d: %d updated, %d errors",
            ingredient_id,
            offset,
            result.flagged_count,
            len(result.errors),
        )

        if result.has_more:
            cascade_ingredient_verdict.send(ingredient_id, result.next_offset)
    finally:
        db.close()
