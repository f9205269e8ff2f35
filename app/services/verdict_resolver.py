"""
Aggregate safety verdict for a product from its ingredients.

Precedence is highest-severity-wins: avoid > caution > safe > unknown.
The resolver is a pure function; callers decide whether to persist.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional

from sqlalchemy.orm import Session

from app.models.ingredient import Ingredient, Verdict

logger = logging.getLogger(__name__)

RULE_NO_INGREDIENTS = "no_ingredients"
RULE_ALL_UNKNOWN = "all_unknown"
RULE_MANUAL_OVERRIDE = "manual_override"

IngredientLookup = Callable[[Optional[int]], Optional[Ingredient]]


@dataclass(frozen=True)
class VerdictResolution:
    """Result of resolving a product verdict."""

    verdict: Verdict
    rule_applied: str
    ingredient_id: Optional[int] = None
    changed: bool = False
    skipped: bool = False  # True when a manual override prevented evaluation


def ingredient_rule(name: str) -> str:
    return f"ingredient:{name}"


def _lookup_verdict(lookup: IngredientLookup, ingredient_id: Optional[int]):
    """Resolve one reference; unresolvable references degrade to unknown."""
    if ingredient_id is None:
        return None, Verdict.UNKNOWN
    try:
        ingredient = lookup(ingredient_id)
    except (LookupError, ValueError) as e:
        logger.warning("Could not resolve ingredient %s: %s", ingredient_id, e)
        return None, Verdict.UNKNOWN
    if ingredient is None:
        return None, Verdict.UNKNOWN
    try:
        return ingredient, Verdict.parse(ingredient.verdict)
    except ValueError:
        logger.warning(
            "Ingredient %s has unrecognised verdict %r", ingredient_id, ingredient.verdict
        )
        return ingredient, Verdict.UNKNOWN


def resolve_verdict(product, ingredient_lookup: IngredientLookup) -> VerdictResolution:
    """
    Compute a product's verdict from its ingredient references.

    Args:
        product: Object exposing ``verdict``, ``rule_applied``,
            ``verdict_override`` and ``ingredient_ids`` (label order)
        ingredient_lookup: Callable resolving an ingredient id to an
            Ingredient, or None when it no longer exists

    Returns:
        VerdictResolution; ``changed`` is False when the stored verdict
        and rule already match, or when the product is under override.
    """
    if product.verdict_override:
        return VerdictResolution(
            verdict=Verdict.parse(product.verdict or Verdict.UNKNOWN.value),
            rule_applied=RULE_MANUAL_OVERRIDE,
            changed=False,
            skipped=True,
        )

    ingredient_ids = list(product.ingredient_ids or [])

    if not ingredient_ids:
        verdict, rule, responsible_id = Verdict.UNKNOWN, RULE_NO_INGREDIENTS, None
    else:
        verdict, rule, responsible_id = Verdict.UNKNOWN, RULE_ALL_UNKNOWN, None
        for ingredient_id in ingredient_ids:
            ingredient, ingredient_verdict = _lookup_verdict(ingredient_lookup, ingredient_id)
            # Strictly greater keeps the first ingredient at the winning severity
            if ingredient is not None and ingredient_verdict.severity > verdict.severity:
                verdict = ingredient_verdict
                rule = ingredient_rule(ingredient.name)
                responsible_id = ingredient.id

    changed = (product.verdict != verdict.value) or (product.rule_applied != rule)
    return VerdictResolution(
        verdict=verdict,
        rule_applied=rule,
        ingredient_id=responsible_id,
        changed=changed,
    )


def build_ingredient_lookup(db: Session, ingredient_ids: Iterable[Optional[int]]) -> IngredientLookup:
    """Load the referenced ingredients in one query and return a dict-backed lookup."""
    wanted = {i for i in ingredient_ids if i is not None}
    by_id: Dict[int, Ingredient] = {}
    if wanted:
        by_id = {
            ingredient.id: ingredient
            for ingredient in db.query(Ingredient).filter(Ingredient.id.in_(wanted)).all()
        }
    return by_id.get
