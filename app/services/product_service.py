"""Business logic for products: ingredient linking, verdict recomputation and overrides."""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError

from app.models.ingredient import Ingredient, Verdict
from app.models.ingredient_alias import IngredientAlias
from app.models.product import Product
from app.models.product_ingredient import ProductIngredient
from app.services.errors import DomainValidationError, NotFoundError
from app.services.verdict_resolver import (
    RULE_MANUAL_OVERRIDE,
    IngredientLookup,
    VerdictResolution,
    build_ingredient_lookup,
    resolve_verdict,
)

logger = logging.getLogger(__name__)


@dataclass
class ParsedIngredients:
    """Outcome of matching raw label text against the ingredient database."""

    linked: List[Ingredient] = field(default_factory=list)
    unmatched: List[str] = field(default_factory=list)


def _clean_label_name(raw_name: str) -> str:
    """Drop parenthetical notes and trailing percentages from a label entry."""
    cleaned = re.sub(r"\s*\([^)]*\)", "", raw_name)
    cleaned = re.sub(r"\s*\d+(\.\d+)?%$", "", cleaned)
    return Ingredient.normalize_name(cleaned)


def _contains_words(text: str, phrase: str) -> bool:
    return re.search(r"(?<!\w)" + re.escape(phrase) + r"(?!\w)", text) is not None


def _best_partial_match(normalized: str, name_map: dict) -> Optional[Ingredient]:
    """Longest known name that appears as whole words in the entry, or contains it."""
    candidates = [
        key for key in name_map
        if _contains_words(normalized, key) or _contains_words(key, normalized)
    ]
    if not candidates:
        return None
    best = min(candidates, key=lambda key: (-len(key), key))
    return name_map[best]


def _create_placeholder_ingredient(db: Session, raw_name: str, normalized: str) -> Ingredient:
    """Create an 'unknown' ingredient for an unmatched label entry."""
    ingredient = (
        db.query(Ingredient).filter(Ingredient.normalized_name == normalized).first()
    )
    if ingredient:
        return ingredient

    display_name = re.sub(r"\s*\([^)]*\)", "", raw_name).strip()
    try:
        with db.begin_nested():
            ingredient = Ingredient(
                name=display_name,
                normalized_name=normalized,
                verdict=Verdict.UNKNOWN.value,
                reason="Auto-created from product ingredients - needs research",
                auto_flag_products=False,  # Don't cascade until researched
            )
            db.add(ingredient)
    except IntegrityError:
        # Race condition: another request created it, fetch the winner
        ingredient = (
            db.query(Ingredient).filter(Ingredient.normalized_name == normalized).first()
        )
    return ingredient


class ProductService:
    """Service for product-related operations."""

    @staticmethod
    def get_product(db: Session, product_id: int) -> Product:
        product = db.query(Product).filter(Product.id == product_id).first()
        if not product:
            raise NotFoundError(f"Product {product_id} not found")
        return product

    @staticmethod
    def parse_and_link_ingredients(
        db: Session, raw_text: str, create_missing: bool = False
    ) -> ParsedIngredients:
        """
        Match a raw ingredient list (e.g. "Sugar, Red 40 (color), Salt 2%")
        against known ingredient names and aliases.

        Exact matches on the normalized name win; otherwise the longest known
        name sharing whole words with the label entry is used.

        Args:
            db: Database session
            raw_text: Comma/semicolon separated label text
            create_missing: Create unmatched names as 'unknown' ingredients
                that do not auto-flag products until researched

        Returns:
            ParsedIngredients with linked ingredients (label order, no
            duplicates) and unmatched names
        """
        result = ParsedIngredients()
        if not raw_text or not raw_text.strip():
            return result

        raw_names = [s.strip() for s in re.split(r"[,;]", raw_text)]
        raw_names = [s for s in raw_names if len(s) > 1]

        name_map = {}
        for ingredient in db.query(Ingredient).all():
            name_map[ingredient.normalized_name] = ingredient
        for alias in db.query(IngredientAlias).all():
            name_map.setdefault(alias.normalized_alias, alias.ingredient)

        seen_ids = set()
        for raw_name in raw_names:
            normalized = _clean_label_name(raw_name)
            if not normalized:
                continue

            match = name_map.get(normalized)
            if match is None:
                match = _best_partial_match(normalized, name_map)

            if match is None and create_missing:
                match = _create_placeholder_ingredient(db, raw_name, normalized)
                name_map[normalized] = match

            if match is None:
                result.unmatched.append(raw_name)
            elif match.id not in seen_ids:
                seen_ids.add(match.id)
                result.linked.append(match)

        return result

    @staticmethod
    def create_product(
        db: Session,
        name: str,
        brand: str,
        barcode: Optional[str] = None,
        ingredient_ids: Optional[List[int]] = None,
        ingredients_text: Optional[str] = None,
        create_missing: bool = False,
    ) -> Product:
        """
        Create a product, link its ingredients and store the resolved verdict.

        Ingredient ids take precedence over raw ingredient text.
        """
        if not name or not name.strip():
            raise DomainValidationError("Product name is required")
        if not brand or not brand.strip():
            raise DomainValidationError("Product brand is required")

        if barcode and db.query(Product).filter(Product.barcode == barcode).first():
            raise DomainValidationError(f"A product with barcode {barcode} already exists")

        if ingredient_ids:
            ingredients = db.query(Ingredient).filter(Ingredient.id.in_(ingredient_ids)).all()
            by_id = {i.id: i for i in ingredients}
            missing = [i for i in ingredient_ids if i not in by_id]
            if missing:
                raise NotFoundError(f"Ingredients not found: {missing}")
            ordered = [by_id[i] for i in dict.fromkeys(ingredient_ids)]
        elif ingredients_text:
            ordered = ProductService.parse_and_link_ingredients(
                db, ingredients_text, create_missing=create_missing
            ).linked
        else:
            ordered = []

        product = Product(
            name=name.strip(),
            brand=brand.strip(),
            barcode=barcode or None,
            verdict=Verdict.UNKNOWN.value,
            verdict_override=False,
        )
        for position, ingredient in enumerate(ordered):
            product.ingredient_links.append(
                ProductIngredient(
                    ingredient_id=ingredient.id,
                    ingredient_name=ingredient.name,
                    position=position,
                )
            )
        db.add(product)
        db.flush()

        ProductService.recompute_verdict(db, product, commit=False)
        db.commit()
        db.refresh(product)
        return product

    @staticmethod
    def apply_resolution(product: Product, resolution: VerdictResolution) -> None:
        product.verdict = resolution.verdict.value
        product.rule_applied = resolution.rule_applied
        product.rule_ingredient_id = resolution.ingredient_id
        product.verdict_updated_at = datetime.utcnow()

    @staticmethod
    def recompute_verdict(
        db: Session,
        product: Product,
        lookup: Optional[IngredientLookup] = None,
        commit: bool = True,
    ) -> VerdictResolution:
        """
        Re-resolve a product's verdict and persist it only if it changed.

        Overridden products are left untouched.
        """
        if lookup is None:
            lookup = build_ingredient_lookup(db, product.ingredient_ids)

        resolution = resolve_verdict(product, lookup)
        if resolution.changed:
            ProductService.apply_resolution(product, resolution)
            db.flush()
            if commit:
                db.commit()
        return resolution

    @staticmethod
    def set_override(
        db: Session,
        product_id: int,
        verdict: str,
        reason: str,
        overridden_by: Optional[str] = None,
    ) -> Product:
        """Freeze a product's verdict against automatic recomputation."""
        if not reason or not reason.strip():
            raise DomainValidationError("An override reason is required")
        try:
            parsed = Verdict.parse(verdict)
        except ValueError:
            raise DomainValidationError(f"Invalid verdict: {verdict!r}")

        product = ProductService.get_product(db, product_id)
        product.verdict = parsed.value
        product.verdict_override = True
        product.verdict_override_reason = reason.strip()
        product.overridden_by = overridden_by
        product.overridden_at = datetime.utcnow()
        product.rule_applied = RULE_MANUAL_OVERRIDE
        product.rule_ingredient_id = None
        product.verdict_updated_at = product.overridden_at
        db.commit()
        db.refresh(product)

        logger.info(
            "Verdict override set on product %s: %s (%s)", product.id, parsed.value, reason
        )
        return product

    @staticmethod
    def clear_override(db: Session, product_id: int) -> Product:
        """Remove a manual override and immediately recompute the verdict."""
        product = ProductService.get_product(db, product_id)
        product.verdict_override = False
        product.verdict_override_reason = None
        product.overridden_by = None
        product.overridden_at = None
        db.flush()

        ProductService.recompute_verdict(db, product, commit=False)
        db.commit()
        db.refresh(product)
        return product

