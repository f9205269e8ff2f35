"""API endpoints for product votes and the testing queue."""

from typing import Optional

from fastapi import APIRouter, Depends, Header, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from app.database import get_db
from app.services.vote_service import VoteService, vote_to_dict

router = APIRouter(prefix="/votes", tags=["votes"])


class ProductInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = None
    brand: Optional[str] = None
    image_url: Optional[str] = Field(None, alias="imageUrl")


class VoteRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    barcode: str
    vote_type: str = Field(..., alias="voteType")
    fingerprint: Optional[str] = None
    product_info: Optional[ProductInfo] = Field(None, alias="productInfo")
    user_id: Optional[str] = Field(None, alias="userId")
    notify_on_complete: bool = Field(False, alias="notifyOnComplete")


class StatusChangeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: str
    product_id: Optional[int] = Field(None, alias="productId")
    notes: Optional[str] = None


class ResetRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    reset_votes: bool = Field(False, alias="resetVotes")
    notes: Optional[str] = None


@router.post("")
async def record_vote(payload: VoteRequest, db: Session = Depends(get_db)):
    """
    Record a search, scan or member scan for a barcode.

    Returns the updated vote totals, status and velocity.
    """
    product_meta = None
    if payload.product_info:
        product_meta = {
            "name": payload.product_info.name,
            "brand": payload.product_info.brand,
            "imageUrl": payload.product_info.image_url,
        }
    service = VoteService(db)
    vote = service.record_vote(
        payload.barcode,
        payload.vote_type,
        fingerprint=payload.fingerprint,
        product_meta=product_meta,
        user_id=payload.user_id,
        notify_on_complete=payload.notify_on_complete,
    )
    return {
        "barcode": vote.barcode,
        "totalWeightedVotes": vote.total_weighted_votes,
        "status": vote.status,
        "velocityScore": vote.velocity_score,
        "urgencyFlag": vote.urgency_flag,
        "uniqueVoters": vote.unique_voters,
        "fundingProgress": vote.funding_progress,
        "fundingThreshold": vote.funding_threshold,
        "thresholdReachedAt": vote.threshold_reached_at.isoformat() if vote.threshold_reached_at else None,
        "yourVoteRank": service.voter_rank(vote.id, payload.fingerprint),
    }


@router.get("/status")
async def vote_status(barcode: str = Query(..., min_length=1), db: Session = Depends(get_db)):
    return VoteService(db).get_status(barcode)


@router.get("/leaderboard")
async def leaderboard(limit: int = Query(10, ge=1), db: Session = Depends(get_db)):
    """Most-wanted products still collecting votes or awaiting the lab."""
    return VoteService(db).leaderboard(limit=limit)


@router.get("/queue")
async def testing_queue(
    filter: str = Query("most_voted"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1),
    db: Session = Depends(get_db),
):
    return VoteService(db).queue(filter=filter, page=page, limit=limit)


@router.get("/mine")
async def my_investigations(
    fingerprint: Optional[str] = Query(None),
    x_fingerprint: Optional[str] = Header(None),
    db: Session = Depends(get_db),
):
    """Barcodes this device has voted on, with status and queue position."""
    return VoteService(db).my_investigations(fingerprint or x_fingerprint)


@router.get("/{barcode}")
async def get_vote(barcode: str, db: Session = Depends(get_db)):
    return vote_to_dict(VoteService(db).get_vote(barcode), include_history=True)


@router.post("/{barcode}/status")
async def change_status(barcode: str, payload: StatusChangeRequest, db: Session = Depends(get_db)):
    """Admin/lab transition to the next lifecycle status."""
    vote = VoteService(db).transition(
        barcode,
        payload.status,
        linked_product_id=payload.product_id,
        notes=payload.notes,
    )
    return vote_to_dict(vote, include_history=True)


@router.post("/{barcode}/reset")
async def reset_vote(barcode: str, payload: ResetRequest, db: Session = Depends(get_db)):
    vote = VoteService(db).admin_reset(barcode, reset_votes=payload.reset_votes, notes=payload.notes)
    return vote_to_dict(vote, include_history=True)
