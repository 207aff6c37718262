import logging
import sqlite3
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional, Tuple
from uuid import uuid4

from app.models import Rating
from app.services.account_directory import AccountDirectory, account_directory
from app.services.database import Database, database, utc_now_iso
from app.services.errors import StoreNotFoundError, StorePermissionError, StoreValidationError
from app.services.notification_store import NotificationStore, notification_store

logger = logging.getLogger(__name__)

REVIEWER_ROLE = "farmer"
MIN_SCORE = 1
MAX_SCORE = 5
REVIEW_MAX_LENGTH = 500


def average_score(scores: List[int]) -> float:
    """Mean of ``scores`` rounded half-up to one decimal, 0.0 for no scores."""
    if not scores:
        return 0.0
    mean = Decimal(sum(scores)) / Decimal(len(scores))
    return float(mean.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


class RatingAggregator:
    """Owns Rating rows and the derived provider aggregate.

    Every mutation recomputes the provider aggregate from scratch, so retried
    or out-of-order writes converge on the same value.
    """

    def __init__(self, db: Database, directory: AccountDirectory, notifications: Optional[NotificationStore] = None):
        self._db = db
        self._directory = directory
        self._notifications = notifications

    @staticmethod
    def _row_to_rating(row: sqlite3.Row) -> Rating:
        return Rating(
            id=row["id"],
            reviewer_id=row["reviewer_id"],
            provider_id=row["provider_id"],
            score=int(row["score"]),
            review=row["review"],
            experience=row["experience"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def _validate_submission(
        self,
        reviewer_id: str,
        provider_id: str,
        score: int,
        experience: str,
        review: Optional[str],
    ) -> None:
        if reviewer_id == provider_id:
            raise StoreValidationError("You cannot rate yourself")
        if isinstance(score, bool) or not isinstance(score, int) or not MIN_SCORE <= score <= MAX_SCORE:
            raise StoreValidationError("Rating must be between 1 and 5")
        if not (experience or "").strip():
            raise StoreValidationError("Experience description is required")
        if review is not None and len(review.strip()) > REVIEW_MAX_LENGTH:
            raise StoreValidationError("Review cannot exceed 500 characters")

        reviewer = self._directory.get(reviewer_id)
        if reviewer.role != REVIEWER_ROLE:
            raise StorePermissionError("Only farmers can rate veterinarians")
        self._directory.get_provider(provider_id)

    def submit_rating(
        self,
        *,
        reviewer_id: str,
        provider_id: str,
        score: int,
        experience: str,
        review: Optional[str] = None,
    ) -> Tuple[Rating, bool]:
        """Create the reviewer's rating for a provider, or update it in place.

        Returns the persisted rating and whether a new row was created.
        """
        self._validate_submission(reviewer_id, provider_id, score, experience, review)
        cleaned_review = review.strip() if review is not None else None
        cleaned_experience = experience.strip()
        now = utc_now_iso()

        with self._db.connection() as conn:
            existing = conn.execute(
                "SELECT id FROM ratings WHERE reviewer_id = ? AND provider_id = ?",
                (reviewer_id, provider_id),
            ).fetchone()
            created = existing is None
            if created:
                try:
                    conn.execute(
                        """
                        INSERT INTO ratings (id, reviewer_id, provider_id, score, review, experience, created_at, updated_at)
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        (
                            f"rt_{uuid4().hex[:10]}",
                            reviewer_id,
                            provider_id,
                            score,
                            cleaned_review,
                            cleaned_experience,
                            now,
                            now,
                        ),
                    )
                except sqlite3.IntegrityError:
                    # Another writer inserted the pair first; fold into its row.
                    logger.info("rating for %s -> %s already exists, updating in place", reviewer_id, provider_id)
                    created = False
            if not created:
                conn.execute(
                    """
                    UPDATE ratings
                    SET score = ?, review = ?, experience = ?, updated_at = ?
                    WHERE reviewer_id = ? AND provider_id = ?
                    """,
                    (score, cleaned_review, cleaned_experience, now, reviewer_id, provider_id),
                )
            row = conn.execute(
                "SELECT * FROM ratings WHERE reviewer_id = ? AND provider_id = ?",
                (reviewer_id, provider_id),
            ).fetchone()

        rating = self._row_to_rating(row)
        self._refresh_aggregate(provider_id)
        if self._notifications is not None:
            self._notifications.dispatch(
                user_id=provider_id,
                title="New rating received" if created else "Rating updated",
                body=f"A farmer rated you {score}/5.",
                category="rating",
                deep_link=f"rating:{rating.id}",
            )
        return rating, created

    def get_rating(self, rating_id: str) -> Rating:
        with self._db.connection() as conn:
            row = conn.execute("SELECT * FROM ratings WHERE id = ?", (rating_id,)).fetchone()
        if not row:
            raise StoreNotFoundError("Rating not found")
        return self._row_to_rating(row)

    def delete_rating(self, *, rating_id: str, actor_user_id: str) -> Rating:
        rating = self.get_rating(rating_id)
        if rating.reviewer_id != actor_user_id and not self._directory.is_admin(actor_user_id):
            raise StorePermissionError("You can only delete your own ratings")

        with self._db.connection() as conn:
            conn.execute("DELETE FROM ratings WHERE id = ?", (rating_id,))
        self._refresh_aggregate(rating.provider_id)
        return rating

    def recompute_provider_rating(self, provider_id: str) -> float:
        with self._db.connection() as conn:
            rows = conn.execute("SELECT score FROM ratings WHERE provider_id = ?", (provider_id,)).fetchall()
        aggregate = average_score([int(row["score"]) for row in rows])
        self._directory.set_provider_rating(provider_id, aggregate)
        return aggregate

    def _refresh_aggregate(self, provider_id: str) -> None:
        try:
            self.recompute_provider_rating(provider_id)
        except Exception:
            logger.exception(
                "Rating aggregate for provider %s is stale until the next rating change or repair pass",
                provider_id,
            )

    def provider_rating(self, provider_id: str) -> float:
        return self._directory.get_provider(provider_id).rating

    def list_provider_ratings(self, provider_id: str) -> List[Rating]:
        self._directory.get_provider(provider_id)
        with self._db.connection() as conn:
            rows = conn.execute(
                "SELECT * FROM ratings WHERE provider_id = ? ORDER BY created_at DESC, id DESC",
                (provider_id,),
            ).fetchall()
        return [self._row_to_rating(row) for row in rows]

    def get_reviewer_rating(self, reviewer_id: str, provider_id: str) -> Optional[Rating]:
        with self._db.connection() as conn:
            row = conn.execute(
                "SELECT * FROM ratings WHERE reviewer_id = ? AND provider_id = ?",
                (reviewer_id, provider_id),
            ).fetchone()
        return self._row_to_rating(row) if row else None

    def list_all_ratings(self, actor_user_id: str) -> List[Rating]:
        if not self._directory.is_admin(actor_user_id):
            raise StorePermissionError("Admin only")
        with self._db.connection() as conn:
            rows = conn.execute("SELECT * FROM ratings ORDER BY created_at DESC, id DESC").fetchall()
        return [self._row_to_rating(row) for row in rows]

    def delete_for_account(self, account_id: str) -> int:
        """Remove every rating the account gave or received.

        Providers rated by the account get their aggregate recomputed.
        """
        with self._db.connection() as conn:
            rows = conn.execute(
                "SELECT id, provider_id FROM ratings WHERE reviewer_id = ? OR provider_id = ?",
                (account_id, account_id),
            ).fetchall()
            rating_ids = [row["id"] for row in rows]
            conn.executemany("DELETE FROM ratings WHERE id = ?", [(rating_id,) for rating_id in rating_ids])

        affected = sorted({row["provider_id"] for row in rows if row["provider_id"] != account_id})
        for provider_id in affected:
            self._refresh_aggregate(provider_id)
        return len(rating_ids)

    def repair_all_ratings(self) -> Dict[str, float]:
        repaired: Dict[str, float] = {}
        for provider_id in self._directory.list_provider_ids():
            repaired[provider_id] = self.recompute_provider_rating(provider_id)
        logger.info("rating repair pass recomputed %d provider aggregates", len(repaired))
        return repaired


rating_aggregator = RatingAggregator(database, account_directory, notification_store)
