"""Business logic for the ingredient database."""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError

from app.models.ingredient import Ingredient, Verdict
from app.models.ingredient_alias import IngredientAlias
from app.services.cascade_service import CascadeResult, VerdictCascadeService
from app.services.errors import DomainValidationError, NotFoundError

logger = logging.getLogger(__name__)


def _parse_verdict(value: str) -> Verdict:
    try:
        return Verdict.parse(value)
    except ValueError:
        allowed = ", ".join(v.value for v in Verdict)
        raise DomainValidationError(f"Invalid verdict {value!r}. Must be one of: {allowed}")


class IngredientService:
    """Service for ingredient-related operations."""

    def __init__(self, db: Session):
        self.db = db

    def get_ingredient(self, ingredient_id: int) -> Ingredient:
        ingredient = self.db.query(Ingredient).filter(Ingredient.id == ingredient_id).first()
        if not ingredient:
            raise NotFoundError(f"Ingredient {ingredient_id} not found")
        return ingredient

    def create_ingredient(
        self,
        name: str,
        verdict: str = Verdict.UNKNOWN.value,
        reason: Optional[str] = None,
        aliases: Optional[List[str]] = None,
        auto_flag_products: bool = True,
        category: Optional[str] = None,
    ) -> Ingredient:
        """
        Create an ingredient with optional aliases.

        Raises:
            DomainValidationError: Empty/duplicate name or alias, invalid verdict
        """
        if not name or not name.strip():
            raise DomainValidationError("Ingredient name is required")
        parsed = _parse_verdict(verdict)

        normalized_name = Ingredient.normalize_name(name)
        if self.db.query(Ingredient).filter(Ingredient.normalized_name == normalized_name).first():
            raise DomainValidationError(f"Ingredient {name!r} already exists")

        ingredient = Ingredient(
            name=name.strip(),
            normalized_name=normalized_name,
            verdict=parsed.value,
            reason=reason,
            category=category,
            auto_flag_products=auto_flag_products,
            flagged_product_count=0,
        )
        seen = {normalized_name}
        for alias in aliases or []:
            normalized_alias = Ingredient.normalize_name(alias)
            if not normalized_alias or normalized_alias in seen:
                continue
            seen.add(normalized_alias)
            ingredient.aliases.append(
                IngredientAlias(alias=alias.strip(), normalized_alias=normalized_alias)
            )

        try:
            with self.db.begin_nested():
                self.db.add(ingredient)
        except IntegrityError:
            raise DomainValidationError(
                f"Ingredient {name!r} or one of its aliases already exists"
            )
        self.db.commit()
        self.db.refresh(ingredient)
        return ingredient

    def update_verdict(
        self,
        ingredient_id: int,
        verdict: str,
        reason: Optional[str] = None,
        auto_flag_products: Optional[bool] = None,
    ) -> CascadeResult:
        """
        Change an ingredient's verdict and cascade it to affected products.

        The verdict is committed before the cascade runs, so a cascade
        failure never loses the ingredient change.
        """
        parsed = _parse_verdict(verdict)
        ingredient = self.get_ingredient(ingredient_id)

        previous_verdict = ingredient.verdict
        ingredient.verdict = parsed.value
        if reason is not None:
            ingredient.reason = reason
        if auto_flag_products is not None:
            ingredient.auto_flag_products = auto_flag_products
        self.db.commit()
        self.db.refresh(ingredient)

        if previous_verdict != parsed.value:
            logger.info(
                "Ingredient %r verdict changed %s -> %s", ingredient.name, previous_verdict, parsed.value
            )

        return VerdictCascadeService(self.db).on_ingredient_verdict_changed(
            ingredient, previous_verdict, parsed.value
        )

    def rerun_cascade(self, ingredient_id: int, offset: int = 0) -> CascadeResult:
        """Re-run one cascade page for the ingredient's current verdict."""
        if offset < 0:
            raise DomainValidationError("offset must be >= 0")
        ingredient = self.get_ingredient(ingredient_id)
        return VerdictCascadeService(self.db).on_ingredient_verdict_changed(
            ingredient, ingredient.verdict, ingredient.verdict, offset=offset, force=True
        )
