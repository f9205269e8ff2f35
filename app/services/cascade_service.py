"""
Ingredient verdict cascade.

When an ingredient's verdict changes, every product containing it is
re-resolved explicitly with the Verdict Resolver. The cascade is
best-effort: each product is updated inside its own savepoint so one
failure never aborts the rest of the page.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from sqlalchemy.orm import Session, selectinload

from app.config import settings
from app.models.ingredient import Ingredient, Verdict
from app.models.product import Product
from app.models.product_ingredient import ProductIngredient
from app.services.product_service import ProductService
from app.services.verdict_resolver import build_ingredient_lookup

logger = logging.getLogger(__name__)


@dataclass
class CascadeResult:
    """Outcome of one cascade page."""

    ingredient_id: int
    previous_verdict: Optional[str]
    new_verdict: str
    triggered: bool = False
    flagged_count: int = 0  # Products whose stored verdict actually changed
    processed: int = 0
    skipped_overrides: int = 0
    errors: List[Dict] = field(default_factory=list)
    has_more: bool = False
    next_offset: Optional[int] = None

    def to_dict(self) -> Dict:
        return {
            "ingredientId": self.ingredient_id,
            "previousVerdict": self.previous_verdict,
            "verdict": self.new_verdict,
            "triggered": self.triggered,
            "flaggedCount": self.flagged_count,
            "processed": self.processed,
            "skippedOverrides": self.skipped_overrides,
            "errors": self.errors,
            "hasMore": self.has_more,
            "nextOffset": self.next_offset,
        }


class VerdictCascadeService:
    """Propagates ingredient verdict changes to the products that contain them."""

    def __init__(self, db: Session, page_size: Optional[int] = None):
        self.db = db
        self.page_size = page_size or settings.cascade_page_size

    def find_products_with_ingredient(self, ingredient_id: int, offset: int = 0) -> List[Product]:
        """
        Page of products whose ingredient list references this ingredient.

        Fetches one row past the page size so callers can tell whether
        more pages exist.
        """
        return (
            self.db.query(Product)
            .join(ProductIngredient, ProductIngredient.product_id == Product.id)
            .filter(ProductIngredient.ingredient_id == ingredient_id)
            .options(selectinload(Product.ingredient_links))
            .distinct()
            .order_by(Product.id)
            .offset(offset)
            .limit(self.page_size + 1)
            .all()
        )

    def on_ingredient_verdict_changed(
        self,
        ingredient: Ingredient,
        previous_verdict: Optional[str],
        new_verdict: str,
        offset: int = 0,
        force: bool = False,
    ) -> CascadeResult:
        """
        Re-evaluate products after an ingredient verdict change.

        Args:
            ingredient: The ingredient whose verdict changed (already persisted)
            previous_verdict: Verdict before the change
            new_verdict: Verdict after the change
            offset: Product offset for paginated runs
            force: Run even if the verdict did not change (manual re-run);
                the flagged count is then recounted from stored verdicts

        Returns:
            CascadeResult with changed-product count and per-product errors
        """
        new_value = Verdict.parse(new_verdict).value
        previous_value = Verdict.parse(previous_verdict).value if previous_verdict else None

        result = CascadeResult(
            ingredient_id=ingredient.id,
            previous_verdict=previous_value,
            new_verdict=new_value,
        )

        if not ingredient.auto_flag_products:
            logger.info("Cascade skipped for %r: auto-flag disabled", ingredient.name)
            return result
        if previous_value == new_value and not force:
            return result

        result.triggered = True

        page = self.find_products_with_ingredient(ingredient.id, offset=offset)
        if len(page) > self.page_size:
            page = page[: self.page_size]
            result.has_more = True
            result.next_offset = offset + self.page_size

        ingredient_ids = {i for product in page for i in product.ingredient_ids}
        lookup = build_ingredient_lookup(self.db, ingredient_ids)

        for product in page:
            result.processed += 1
            if product.verdict_override:
                result.skipped_overrides += 1
                continue

            product_id = product.id
            try:
                with self.db.begin_nested():
                    resolution = ProductService.recompute_verdict(
                        self.db, product, lookup=lookup, commit=False
                    )
                if resolution.changed:
                    result.flagged_count += 1
            except Exception as e:
                logger.warning(
                    "Cascade failed to update product %s for ingredient %r: %s",
                    product_id,
                    ingredient.name,
                    e,
                )
                result.errors.append({"productId": product_id, "error": str(e)})

        if new_value == Verdict.AVOID.value:
            if force:
                self._recount_flagged(ingredient)
            else:
                self._record_flagged_count(ingredient, result.flagged_count, accumulate=offset > 0)

        self.db.commit()

        logger.info(
            "Cascade: updated %d of %d products after ingredient %r changed %s -> %s (%d errors)",
            result.flagged_count,
            result.processed,
            ingredient.name,
            previous_value,
            new_value,
            len(result.errors),
        )
        return result

    def _record_flagged_count(self, ingredient: Ingredient, count: int, accumulate: bool) -> None:
        """Store the derived flagged-product count; later pages add to the first."""
        if accumulate:
            self.db.query(Ingredient).filter(Ingredient.id == ingredient.id).update(
                {Ingredient.flagged_product_count: Ingredient.flagged_product_count + count},
                synchronize_session=False,
            )
            self.db.flush()
            self.db.refresh(ingredient)
        else:
            ingredient.flagged_product_count = count
            self.db.flush()

    def _recount_flagged(self, ingredient: Ingredient) -> None:
        """Derive the count from products currently flagged by this ingredient."""
        ingredient.flagged_product_count = (
            self.db.query(Product)
            .filter(
                Product.rule_ingredient_id == ingredient.id,
                Product.verdict == Verdict.AVOID.value,
            )
            .count()
        )
        self.db.flush()
