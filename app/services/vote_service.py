"""
Weighted product votes for untested barcodes.

Votes are the "proof of possession" signal that decides which products
get lab tested next. Counters are only ever changed with SQL-side
increments so concurrent votes on the same barcode never lose updates.
"""

import logging
import math
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import settings
from app.models.product import Product
from app.models.product_vote import OPEN_STATUSES, ProductVote, UrgencyFlag, VoteStatus, VoteType
from app.models.product_voter import ProductVoter
from app.models.scan_event import ScanEvent
from app.models.vote_subscriber import VoteSubscriber
from app.models.vote_status_change import VoteStatusChange
from app.services.errors import (
    DomainValidationError,
    IllegalTransitionError,
    NotFoundError,
    ServiceUnavailableError,
)
from app.services.notification_service import SubscriberNotifier
from app.services.velocity import SEVEN_DAYS, calculate_velocity
from app.services.vote_state_machine import parse_status, validate_transition

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 50

QUEUE_FILTERS = ("most_voted", "newest", "almost_funded")

COUNTER_COLUMNS = {
    VoteType.SEARCH: ProductVote.search_count,
    VoteType.SCAN: ProductVote.scan_count,
    VoteType.MEMBER_SCAN: ProductVote.member_scan_count,
}

SCAN_TYPES = (VoteType.SCAN, VoteType.MEMBER_SCAN)

# Statuses that still hold a place in the testing queue
QUEUE_STATUSES = OPEN_STATUSES + (VoteStatus.QUEUED.value, VoteStatus.TESTING.value)
QUEUE_RANK_LIMIT = 500
INVESTIGATION_LIMIT = 100


def vote_weight(vote_type: VoteType) -> int:
    return {
        VoteType.SEARCH: settings.search_vote_weight,
        VoteType.SCAN: settings.scan_vote_weight,
        VoteType.MEMBER_SCAN: settings.member_scan_vote_weight,
    }[vote_type]


def _parse_vote_type(value) -> VoteType:
    try:
        return VoteType(value)
    except ValueError:
        allowed = ", ".join(t.value for t in VoteType)
        raise DomainValidationError(f"Invalid vote type {value!r}. Must be one of: {allowed}")


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def vote_to_dict(vote: ProductVote, include_history: bool = False) -> Dict:
    """Serialize a ProductVote with camelCase keys for API responses."""
    data = {
        "id": vote.id,
        "barcode": vote.barcode,
        "productName": vote.product_name,
        "brand": vote.brand,
        "imageUrl": vote.image_url,
        "totalWeightedVotes": vote.total_weighted_votes,
        "searchCount": vote.search_count,
        "scanCount": vote.scan_count,
        "memberScanCount": vote.member_scan_count,
        "uniqueVoters": vote.unique_voters,
        "fundingThreshold": vote.funding_threshold,
        "fundingProgress": vote.funding_progress,
        "status": vote.status,
        "thresholdReachedAt": _isoformat(vote.threshold_reached_at),
        "linkedProductId": vote.linked_product_id,
        "resultsNotifiedAt": _isoformat(vote.results_notified_at),
        "scansLast24h": vote.scans_last_24h,
        "scansLast7d": vote.scans_last_7d,
        "velocityScore": vote.velocity_score,
        "urgencyFlag": vote.urgency_flag,
        "createdAt": _isoformat(vote.created_at),
    }
    if include_history:
        data["statusHistory"] = [
            {
                "fromStatus": change.from_status,
                "toStatus": change.to_status,
                "changedAt": _isoformat(change.changed_at),
                "notes": change.notes,
            }
            for change in vote.status_history
        ]
    return data


class VoteService:
    """Service for recording votes and driving the testing-request lifecycle."""

    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_vote(self, barcode: str) -> ProductVote:
        vote = self.db.query(ProductVote).filter(ProductVote.barcode == barcode).first()
        if not vote:
            raise NotFoundError(f"No votes recorded for barcode {barcode}")
        return vote

    def get_status(self, barcode: str) -> Dict:
        """Status summary for a barcode; never raises for unknown barcodes."""
        vote = self.db.query(ProductVote).filter(ProductVote.barcode == barcode).first()
        if not vote:
            return {
                "exists": False,
                "barcode": barcode,
                "totalVotes": 0,
                "fundingProgress": 0,
            }
        return {
            "exists": True,
            "barcode": vote.barcode,
            "productName": vote.product_name,
            "totalVotes": vote.total_weighted_votes,
            "uniqueVoters": vote.unique_voters,
            "fundingProgress": vote.funding_progress,
            "fundingThreshold": vote.funding_threshold,
            "status": vote.status,
            "urgencyFlag": vote.urgency_flag,
            "thresholdReachedAt": _isoformat(vote.threshold_reached_at),
        }

    def leaderboard(self, limit: int = 10) -> Dict:
        """Most-wanted open requests that have a product name to show."""
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        votes = (
            self.db.query(ProductVote)
            .filter(
                ProductVote.status.in_(OPEN_STATUSES),
                ProductVote.product_name.isnot(None),
                ProductVote.product_name != "",
            )
            .order_by(ProductVote.total_weighted_votes.desc(), ProductVote.id)
            .limit(limit)
            .all()
        )
        entries = []
        for rank, vote in enumerate(votes, start=1):
            entries.append({
                "rank": rank,
                "barcode": vote.barcode,
                "productName": vote.product_name,
                "brand": vote.brand,
                "imageUrl": vote.image_url,
                "totalWeightedVotes": vote.total_weighted_votes,
                "uniqueVoters": vote.unique_voters,
                "fundingProgress": vote.funding_progress,
                "status": vote.status,
                "urgencyFlag": vote.urgency_flag,
            })
        return {"leaderboard": entries, "total": len(entries)}

    def queue(self, filter: str = "most_voted", page: int = 1, limit: int = 20) -> Dict:
        """
        Paginated list of open testing requests.

        Args:
            filter: most_voted, newest or almost_funded
            page: 1-based page number
            limit: Page size (capped at 50)
        """
        if filter not in QUEUE_FILTERS:
            raise DomainValidationError(
                f"Invalid filter {filter!r}. Must be one of: {', '.join(QUEUE_FILTERS)}"
            )
        if page < 1:
            raise DomainValidationError("page must be >= 1")
        limit = max(1, min(limit, MAX_PAGE_SIZE))

        query = self.db.query(ProductVote).filter(ProductVote.status.in_(OPEN_STATUSES))
        total = query.count()

        if filter == "newest":
            ordering = [ProductVote.created_at.desc(), ProductVote.id.desc()]
        elif filter == "almost_funded":
            progress = ProductVote.total_weighted_votes * 1.0 / ProductVote.funding_threshold
            ordering = [progress.desc(), ProductVote.id]
        else:
            ordering = [ProductVote.total_weighted_votes.desc(), ProductVote.id]

        votes = query.order_by(*ordering).offset((page - 1) * limit).limit(limit).all()
        return {
            "products": [vote_to_dict(vote) for vote in votes],
            "total": total,
            "page": page,
            "totalPages": math.ceil(total / limit) if total else 0,
        }

    def voter_rank(self, vote_id: int, fingerprint: Optional[str]) -> Optional[int]:
        """Position of a device among the barcode's unique voters (1 = first)."""
        if not fingerprint:
            return None
        return (
            self.db.query(ProductVoter.voter_rank)
            .filter(ProductVoter.product_vote_id == vote_id, ProductVoter.fingerprint == fingerprint)
            .scalar()
        )

    def my_investigations(self, fingerprint: str) -> Dict:
        """
        Barcodes a device has voted on, newest first, with queue positions.

        Queue position ranks every request still waiting for or in the lab
        by velocity score; completed requests have none.
        """
        fingerprint = (fingerprint or "").strip()
        if not fingerprint:
            raise DomainValidationError("fingerprint is required")

        rows = (
            self.db.query(ProductVote, ProductVoter.voter_rank)
            .join(ProductVoter, ProductVoter.product_vote_id == ProductVote.id)
            .filter(ProductVoter.fingerprint == fingerprint)
            .order_by(ProductVoter.first_voted_at.desc(), ProductVote.id.desc())
            .limit(INVESTIGATION_LIMIT)
            .all()
        )
        if not rows:
            return {"investigations": [], "totalInvestigations": 0, "resultsReady": 0}

        ranked = (
            self.db.query(ProductVote.id)
            .filter(ProductVote.status.in_(QUEUE_STATUSES))
            .order_by(ProductVote.velocity_score.desc(), ProductVote.id)
            .limit(QUEUE_RANK_LIMIT)
            .all()
        )
        positions = {row.id: position for position, row in enumerate(ranked, start=1)}

        investigations = []
        for vote, rank in rows:
            if vote.status == VoteStatus.COMPLETE.value:
                progress = "complete"
            elif vote.status in (VoteStatus.QUEUED.value, VoteStatus.TESTING.value):
                progress = "testing"
            else:
                progress = "waiting"

            investigations.append({
                "barcode": vote.barcode,
                "productName": vote.product_name or "Unknown Product",
                "brand": vote.brand,
                "imageUrl": vote.image_url,
                "status": progress,
                "lifecycleStatus": vote.status,
                "queuePosition": positions.get(vote.id) if progress != "complete" else None,
                "fundingProgress": vote.funding_progress,
                "yourScoutNumber": rank,
                "totalScouts": vote.unique_voters,
                "isFirstScout": rank == 1,
                "isTrending": vote.urgency_flag in (UrgencyFlag.TRENDING.value, UrgencyFlag.URGENT.value),
                "velocityChange24h": vote.scans_last_24h,
                "linkedProductId": vote.linked_product_id,
                "createdAt": _isoformat(vote.created_at),
            })

        return {
            "investigations": investigations,
            "totalInvestigations": len(investigations),
            "resultsReady": sum(1 for i in investigations if i["status"] == "complete"),
        }

    # ------------------------------------------------------------------
    # Voting
    # ------------------------------------------------------------------

    def record_vote(
        self,
        barcode: str,
        vote_type: str,
        fingerprint: Optional[str] = None,
        product_meta: Optional[Dict] = None,
        now: Optional[datetime] = None,
        user_id: Optional[str] = None,
        notify_on_complete: bool = False,
    ) -> ProductVote:
        """
        Record one weighted vote for a barcode.

        Creates the request on first sight, counts the voter once per
        fingerprint, refreshes scan velocity and flips the request to
        threshold_reached when this vote completes the funding. With
        ``notify_on_complete`` the user id (or else the fingerprint) is
        subscribed to the results-ready notification.

        Raises:
            DomainValidationError: Missing barcode or unknown vote type
        """
        barcode = (barcode or "").strip()
        if not barcode:
            raise DomainValidationError("barcode is required")
        parsed_type = _parse_vote_type(vote_type)
        now = now or datetime.utcnow()
        weight = vote_weight(parsed_type)

        vote = self._get_or_create(barcode, now)
        vote_id = vote.id

        counter = COUNTER_COLUMNS[parsed_type]
        self.db.query(ProductVote).filter(ProductVote.id == vote_id).update(
            {
                ProductVote.total_weighted_votes: ProductVote.total_weighted_votes + weight,
                counter: counter + 1,
            },
            synchronize_session=False,
        )

        if product_meta:
            self._fill_product_meta(vote_id, product_meta)

        if fingerprint:
            self._count_voter(vote_id, fingerprint, now)

        if notify_on_complete and (user_id or fingerprint):
            self._subscribe(vote_id, user_id or fingerprint, now)

        if parsed_type in SCAN_TYPES:
            self.db.add(ScanEvent(product_vote_id=vote_id, vote_type=parsed_type.value, scanned_at=now))
            self.db.flush()
        self._update_velocity(vote_id, now)

        self._check_threshold(vote_id, barcode, now)

        self.db.commit()
        self.db.refresh(vote)
        logger.debug(
            "Recorded %s vote (+%d) for %s, total now %d",
            parsed_type.value,
            weight,
            barcode,
            vote.total_weighted_votes,
        )
        return vote

    def refresh_velocity(self, now: Optional[datetime] = None) -> int:
        """Recompute velocity windows for all open requests. Returns count refreshed."""
        now = now or datetime.utcnow()
        vote_ids = [
            row.id
            for row in self.db.query(ProductVote.id).filter(ProductVote.status.in_(OPEN_STATUSES)).all()
        ]
        for vote_id in vote_ids:
            self._update_velocity(vote_id, now)
        self.db.commit()
        logger.info("Refreshed velocity for %d open testing requests", len(vote_ids))
        return len(vote_ids)

    def _get_or_create(self, barcode: str, now: datetime) -> ProductVote:
        vote = self.db.query(ProductVote).filter(ProductVote.barcode == barcode).first()
        if vote:
            return vote

        vote = ProductVote(
            barcode=barcode,
            total_weighted_votes=0,
            search_count=0,
            scan_count=0,
            member_scan_count=0,
            unique_voters=0,
            funding_threshold=settings.default_funding_threshold,
            status=VoteStatus.COLLECTING_VOTES.value,
            scans_last_24h=0,
            scans_last_7d=0,
            velocity_score=0,
            urgency_flag=UrgencyFlag.NORMAL.value,
        )
        try:
            with self.db.begin_nested():
                self.db.add(vote)
                self.db.flush()
                self.db.add(VoteStatusChange(
                    product_vote_id=vote.id,
                    from_status=None,
                    to_status=VoteStatus.COLLECTING_VOTES.value,
                    changed_at=now,
                    notes="First vote received",
                ))
        except IntegrityError:
            # Another request created it between our check and insert
            vote = self.db.query(ProductVote).filter(ProductVote.barcode == barcode).first()
            if not vote:
                raise
            return vote

        logger.info("New testing request opened for barcode %s", barcode)
        return vote

    def _fill_product_meta(self, vote_id: int, product_meta: Dict) -> None:
        """Set name, brand and image only where they are still empty."""
        fields = (
            (ProductVote.product_name, product_meta.get("name")),
            (ProductVote.brand, product_meta.get("brand")),
            (ProductVote.image_url, product_meta.get("imageUrl") or product_meta.get("image_url")),
        )
        for column, value in fields:
            if not value:
                continue
            self.db.query(ProductVote).filter(
                ProductVote.id == vote_id,
                (column.is_(None)) | (column == ""),
            ).update({column: value}, synchronize_session=False)

    def _count_voter(self, vote_id: int, fingerprint: str, now: datetime) -> bool:
        """Record the fingerprint; returns True only the first time it votes on this barcode."""
        exists = (
            self.db.query(ProductVoter.id)
            .filter(ProductVoter.product_vote_id == vote_id, ProductVoter.fingerprint == fingerprint)
            .first()
        )
        if exists:
            return False

        voter = ProductVoter(product_vote_id=vote_id, fingerprint=fingerprint, first_voted_at=now)
        try:
            with self.db.begin_nested():
                self.db.add(voter)
        except IntegrityError:
            # Concurrent vote from the same device already counted it
            return False

        self.db.query(ProductVote).filter(ProductVote.id == vote_id).update(
            {ProductVote.unique_voters: ProductVote.unique_voters + 1},
            synchronize_session=False,
        )
        # The increment holds the row lock until commit, so this is our position
        voter.voter_rank = (
            self.db.query(ProductVote.unique_voters).filter(ProductVote.id == vote_id).scalar()
        )
        self.db.flush()
        return True

    def _subscribe(self, vote_id: int, subscriber_id: str, now: datetime) -> bool:
        """Add a results-ready subscriber; returns False if already subscribed."""
        exists = (
            self.db.query(VoteSubscriber.id)
            .filter(
                VoteSubscriber.product_vote_id == vote_id,
                VoteSubscriber.subscriber_id == subscriber_id,
            )
            .first()
        )
        if exists:
            return False

        try:
            with self.db.begin_nested():
                self.db.add(VoteSubscriber(
                    product_vote_id=vote_id, subscriber_id=subscriber_id, subscribed_at=now
                ))
        except IntegrityError:
            return False
        return True

    def _prune_scan_window(self, vote_id: int, now: datetime) -> List[datetime]:
        """Drop scans older than 7 days and beyond the cap; returns remaining scan times."""
        self.db.query(ScanEvent).filter(
            ScanEvent.product_vote_id == vote_id,
            ScanEvent.scanned_at <= now - SEVEN_DAYS,
        ).delete(synchronize_session=False)

        overflow = [
            row.id
            for row in self.db.query(ScanEvent.id)
            .filter(ScanEvent.product_vote_id == vote_id)
            .order_by(ScanEvent.scanned_at.desc(), ScanEvent.id.desc())
            .offset(settings.max_scan_timestamps)
            .all()
        ]
        if overflow:
            self.db.query(ScanEvent).filter(ScanEvent.id.in_(overflow)).delete(synchronize_session=False)

        return [
            row.scanned_at
            for row in self.db.query(ScanEvent.scanned_at).filter(ScanEvent.product_vote_id == vote_id).all()
        ]

    def _update_velocity(self, vote_id: int, now: datetime) -> None:
        scan_times = self._prune_scan_window(vote_id, now)
        total = (
            self.db.query(ProductVote.total_weighted_votes)
            .filter(ProductVote.id == vote_id)
            .scalar()
        ) or 0
        metrics = calculate_velocity(scan_times, total, now)
        self.db.query(ProductVote).filter(ProductVote.id == vote_id).update(
            {
                ProductVote.scans_last_24h: metrics.scans_last_24h,
                ProductVote.scans_last_7d: metrics.scans_last_7d,
                ProductVote.velocity_score: metrics.velocity_score,
                ProductVote.urgency_flag: metrics.urgency_flag.value,
            },
            synchronize_session=False,
        )

    def _check_threshold(self, vote_id: int, barcode: str, now: datetime) -> bool:
        """Flip collecting_votes -> threshold_reached; only the crossing vote matches."""
        crossed = self.db.query(ProductVote).filter(
            ProductVote.id == vote_id,
            ProductVote.status == VoteStatus.COLLECTING_VOTES.value,
            ProductVote.total_weighted_votes >= ProductVote.funding_threshold,
        ).update(
            {
                ProductVote.status: VoteStatus.THRESHOLD_REACHED.value,
                ProductVote.threshold_reached_at: now,
            },
            synchronize_session=False,
        )
        if not crossed:
            return False

        self.db.add(VoteStatusChange(
            product_vote_id=vote_id,
            from_status=VoteStatus.COLLECTING_VOTES.value,
            to_status=VoteStatus.THRESHOLD_REACHED.value,
            changed_at=now,
            notes="Funding threshold reached",
        ))
        self.db.flush()
        logger.info("Barcode %s reached its funding threshold", barcode)
        return True

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def transition(
        self,
        barcode: str,
        target: str,
        linked_product_id: Optional[int] = None,
        notes: Optional[str] = None,
        notifier: Optional[SubscriberNotifier] = None,
    ) -> ProductVote:
        """
        Move a testing request to the next lifecycle status.

        Raises:
            NotFoundError: Unknown barcode, or the linked product does not exist
            IllegalTransitionError: Target is not the immediate next status,
                or is threshold_reached (set automatically by votes)
            DomainValidationError: Completing without a tested product
        """
        target_status = parse_status(target)
        vote = self.get_vote(barcode)
        current = vote.status

        if target_status == VoteStatus.THRESHOLD_REACHED:
            raise IllegalTransitionError(
                current, target_status.value, "threshold_reached is set automatically by votes"
            )
        validate_transition(current, target_status)

        values = {ProductVote.status: target_status.value}
        product = None
        if target_status == VoteStatus.COMPLETE:
            product_id = linked_product_id or vote.linked_product_id
            if product_id is None:
                raise DomainValidationError("A tested product is required to complete testing")
            product = self.db.query(Product).filter(Product.id == product_id).first()
            if not product:
                raise NotFoundError(f"Product {product_id} not found")
            values[ProductVote.linked_product_id] = product.id

        # Conditional on the status we validated against
        updated = self.db.query(ProductVote).filter(
            ProductVote.id == vote.id, ProductVote.status == current
        ).update(values, synchronize_session=False)
        if not updated:
            self.db.rollback()
            raise IllegalTransitionError(current, target_status.value, "status changed concurrently")

        self.db.add(VoteStatusChange(
            product_vote_id=vote.id,
            from_status=current,
            to_status=target_status.value,
            notes=notes,
        ))
        self.db.commit()
        self.db.refresh(vote)
        logger.info("Testing request %s moved %s -> %s", barcode, current, target_status.value)

        if product is not None:
            self._notify_results(vote, product, notifier or SubscriberNotifier())
        return vote

    def complete_testing(self, barcode: str, product_id: int, notifier: Optional[SubscriberNotifier] = None) -> ProductVote:
        """Mark lab testing complete and link the tested product."""
        if product_id is None:
            raise DomainValidationError("productId is required")
        return self.transition(
            barcode,
            VoteStatus.COMPLETE.value,
            linked_product_id=product_id,
            notes="Lab testing complete",
            notifier=notifier,
        )

    def admin_reset(self, barcode: str, reset_votes: bool = False, notes: Optional[str] = None) -> ProductVote:
        """
        Send a request back to collecting_votes.

        With ``reset_votes`` the counters, voters and scan window are cleared
        too; otherwise accumulated votes are kept and the next vote may
        cross the threshold again.
        """
        vote = self.get_vote(barcode)
        previous = vote.status

        values = {
            ProductVote.status: VoteStatus.COLLECTING_VOTES.value,
            ProductVote.threshold_reached_at: None,
            ProductVote.results_notified_at: None,
        }
        if reset_votes:
            values.update({
                ProductVote.total_weighted_votes: 0,
                ProductVote.search_count: 0,
                ProductVote.scan_count: 0,
                ProductVote.member_scan_count: 0,
                ProductVote.unique_voters: 0,
                ProductVote.scans_last_24h: 0,
                ProductVote.scans_last_7d: 0,
                ProductVote.velocity_score: 0,
                ProductVote.urgency_flag: UrgencyFlag.NORMAL.value,
            })
            self.db.query(ProductVoter).filter(ProductVoter.product_vote_id == vote.id).delete(
                synchronize_session=False
            )
            self.db.query(ScanEvent).filter(ScanEvent.product_vote_id == vote.id).delete(
                synchronize_session=False
            )

        self.db.query(ProductVote).filter(ProductVote.id == vote.id).update(values, synchronize_session=False)
        self.db.add(VoteStatusChange(
            product_vote_id=vote.id,
            from_status=previous,
            to_status=VoteStatus.COLLECTING_VOTES.value,
            notes=notes or ("Admin reset (votes cleared)" if reset_votes else "Admin reset"),
        ))
        self.db.commit()
        self.db.expire_all()
        self.db.refresh(vote)
        logger.warning("Testing request %s reset from %s (reset_votes=%s)", barcode, previous, reset_votes)
        return vote

    def _notify_results(self, vote: ProductVote, product: Product, notifier: SubscriberNotifier) -> None:
        """Send the results-ready notification at most once per completion."""
        claimed = self.db.query(ProductVote).filter(
            ProductVote.id == vote.id, ProductVote.results_notified_at.is_(None)
        ).update({ProductVote.results_notified_at: datetime.utcnow()}, synchronize_session=False)
        self.db.commit()
        self.db.refresh(vote)
        if not claimed:
            logger.info("Results for %s already notified, skipping", vote.barcode)
            return

        subscribers = [
            row.subscriber_id
            for row in self.db.query(VoteSubscriber.subscriber_id)
            .filter(VoteSubscriber.product_vote_id == vote.id)
            .order_by(VoteSubscriber.id)
            .all()
        ]
        try:
            notifier.notify_results_ready(
                vote.barcode,
                vote.product_name or product.name,
                product_id=product.id,
                subscribers=subscribers,
            )
        except ServiceUnavailableError as e:
            logger.error("Could not notify subscribers for %s: %s", vote.barcode, e)
