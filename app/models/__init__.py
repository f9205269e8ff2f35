"""
Database models for the product verdict service.

Import all models here so Alembic can detect them for migrations.
"""

from app.database import Base
from app.models.ingredient import Ingredient, Verdict
from app.models.ingredient_alias import IngredientAlias
from app.models.product import Product
from app.models.product_ingredient import ProductIngredient
from app.models.product_vote import (
    ProductVote,
    VoteType,
    VoteStatus,
    UrgencyFlag,
    OPEN_STATUSES,
)
from app.models.product_voter import ProductVoter
from app.models.scan_event import ScanEvent
from app.models.vote_subscriber import VoteSubscriber
from app.models.vote_status_change import VoteStatusChange

__all__ = [
    "Base",
    "Ingredient",
    "Verdict",
    "IngredientAlias",
    "Product",
    "ProductIngredient",
    "ProductVote",
    "VoteType",
    "VoteStatus",
    "UrgencyFlag",
    "OPEN_STATUSES",
    "ProductVoter",
    "ScanEvent",
    "VoteSubscriber",
    "VoteStatusChange",
]
