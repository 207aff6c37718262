import logging
import sqlite3
from contextlib import contextmanager

import pytest

from app.services.errors import StoreNotFoundError, StorePermissionError, StoreValidationError
from app.services.rating_aggregator import average_score


def _rate(services, reviewer, provider, score, experience="Treated our cow quickly"):
    return services.aggregator.submit_rating(
        reviewer_id=reviewer.id,
        provider_id=provider.id,
        score=score,
        experience=experience,
    )


def test_average_score_rounds_half_up_to_one_decimal():
    assert average_score([]) == 0.0
    assert average_score([4]) == 4.0
    assert average_score([1, 2]) == 1.5
    assert average_score([4, 4, 4, 5]) == 4.3
    assert average_score([1, 1, 2]) == 1.3


def test_resubmission_updates_existing_rating_in_place(services, make_account):
    farmer = make_account("farmer")
    vet = make_account("veterinarian")

    first, created = _rate(services, farmer, vet, 4)
    assert created is True
    assert services.directory.get(vet.id).rating == 4.0

    second, created_again = _rate(services, farmer, vet, 2, experience="Second visit was late")
    assert created_again is False
    assert second.id == first.id
    assert second.score == 2
    assert second.experience == "Second visit was late"
    assert services.directory.get(vet.id).rating == 2.0
    assert len(services.aggregator.list_provider_ratings(vet.id)) == 1


def test_deleting_a_rating_recomputes_from_remaining_set(services, make_account):
    vet = make_account("veterinarian")
    ratings = {}
    for score in (5, 3, 4):
        farmer = make_account("farmer")
        rating, _ = _rate(services, farmer, vet, score)
        ratings[score] = (farmer, rating)
    assert services.directory.get(vet.id).rating == 4.0

    farmer, rating = ratings[3]
    services.aggregator.delete_rating(rating_id=rating.id, actor_user_id=farmer.id)

    assert services.directory.get(vet.id).rating == 4.5
    with pytest.raises(StoreNotFoundError):
        services.aggregator.get_rating(rating.id)


def test_aggregate_falls_back_to_zero_when_last_rating_removed(services, make_account):
    farmer = make_account("farmer")
    vet = make_account("veterinarian")
    rating, _ = _rate(services, farmer, vet, 5)

    services.aggregator.delete_rating(rating_id=rating.id, actor_user_id=farmer.id)

    assert services.directory.get(vet.id).rating == 0.0


def test_self_rating_is_rejected_without_writing(services, make_account):
    vet = make_account("veterinarian")
    farmer = make_account("farmer")
    _rate(services, farmer, vet, 4)

    with pytest.raises(StoreValidationError, match="cannot rate yourself"):
        _rate(services, vet, vet, 1)

    assert services.directory.get(vet.id).rating == 4.0
    assert [r.reviewer_id for r in services.aggregator.list_provider_ratings(vet.id)] == [farmer.id]


@pytest.mark.parametrize("score", [0, 6, -1])
def test_out_of_range_score_is_rejected(services, make_account, score):
    farmer = make_account("farmer")
    vet = make_account("veterinarian")

    with pytest.raises(StoreValidationError, match="between 1 and 5"):
        _rate(services, farmer, vet, score)
    assert services.aggregator.list_provider_ratings(vet.id) == []


def test_experience_is_required(services, make_account):
    farmer = make_account("farmer")
    vet = make_account("veterinarian")

    with pytest.raises(StoreValidationError, match="Experience"):
        _rate(services, farmer, vet, 5, experience="   ")


def test_review_length_is_capped(services, make_account):
    farmer = make_account("farmer")
    vet = make_account("veterinarian")

    with pytest.raises(StoreValidationError, match="500"):
        services.aggregator.submit_rating(
            reviewer_id=farmer.id,
            provider_id=vet.id,
            score=5,
            experience="ok",
            review="x" * 501,
        )


def test_only_farmers_can_submit_ratings(services, make_account):
    buyer = make_account("buyer")
    vet = make_account("veterinarian")

    with pytest.raises(StorePermissionError):
        _rate(services, buyer, vet, 5)


def test_provider_must_be_a_veterinarian(services, make_account):
    farmer = make_account("farmer")
    seller = make_account("seller")

    with pytest.raises(StoreNotFoundError, match="Veterinarian not found"):
        _rate(services, farmer, seller, 5)


def test_delete_rating_authorization(services, make_account):
    farmer = make_account("farmer")
    other_farmer = make_account("farmer")
    admin = make_account("admin")
    vet = make_account("veterinarian")
    rating, _ = _rate(services, farmer, vet, 3)

    with pytest.raises(StorePermissionError):
        services.aggregator.delete_rating(rating_id=rating.id, actor_user_id=other_farmer.id)

    services.aggregator.delete_rating(rating_id=rating.id, actor_user_id=admin.id)

    with pytest.raises(StoreNotFoundError):
        services.aggregator.delete_rating(rating_id=rating.id, actor_user_id=admin.id)


def test_storage_rejects_duplicate_reviewer_provider_pair(services, make_account):
    farmer = make_account("farmer")
    vet = make_account("veterinarian")
    _rate(services, farmer, vet, 4)

    with pytest.raises(sqlite3.IntegrityError):
        with services.db.connection() as conn:
            conn.execute(
                """
                INSERT INTO ratings (id, reviewer_id, provider_id, score, review, experience, created_at, updated_at)
                VALUES ('rt_dup', ?, ?, 1, NULL, 'dup', 'now', 'now')
                """,
                (farmer.id, vet.id),
            )


def test_recompute_failure_keeps_rating_and_logs_stale_aggregate(services, make_account, monkeypatch, caplog):
    farmer = make_account("farmer")
    vet = make_account("veterinarian")

    def _broken(provider_id, rating):
        raise RuntimeError("directory unavailable")

    monkeypatch.setattr(services.directory, "set_provider_rating", _broken)
    with caplog.at_level(logging.ERROR):
        rating, created = _rate(services, farmer, vet, 5)

    assert created is True
    assert services.aggregator.get_rating(rating.id).score == 5
    assert "stale" in caplog.text
    monkeypatch.undo()

    assert services.directory.get(vet.id).rating == 0.0
    repaired = services.aggregator.repair_all_ratings()
    assert repaired[vet.id] == 5.0
    assert services.directory.get(vet.id).rating == 5.0


def test_reviewer_can_fetch_own_rating_and_admin_lists_all(services, make_account):
    farmer = make_account("farmer")
    vet = make_account("veterinarian")
    admin = make_account("admin")
    rating, _ = _rate(services, farmer, vet, 4)

    assert services.aggregator.get_reviewer_rating(farmer.id, vet.id).id == rating.id
    assert services.aggregator.get_reviewer_rating(vet.id, farmer.id) is None
    assert [r.id for r in services.aggregator.list_all_ratings(admin.id)] == [rating.id]
    with pytest.raises(StorePermissionError):
        services.aggregator.list_all_ratings(farmer.id)


def test_provider_is_notified_of_new_rating(services, make_account):
    farmer = make_account("farmer")
    vet = make_account("veterinarian")
    _rate(services, farmer, vet, 5)

    feed = services.notifications.list_for_user(vet.id)
    assert feed and feed[0].category == "rating"


class _EmptyResult:
    def fetchone(self):
        return None


class _ExistenceCheckMisses:
    """Connection wrapper that hides existing rows from the pre-insert lookup."""

    def __init__(self, conn):
        self._conn = conn

    def execute(self, sql, params=()):
        if sql.startswith("SELECT id FROM ratings WHERE reviewer_id"):
            return _EmptyResult()
        return self._conn.execute(sql, params)

    def __getattr__(self, name):
        return getattr(self._conn, name)


def test_losing_insert_race_falls_back_to_update_in_place(services, make_account, monkeypatch):
    farmer = make_account("farmer")
    vet = make_account("veterinarian")
    original, _ = _rate(services, farmer, vet, 5)
    real_connection = services.db.connection

    @contextmanager
    def _racing_connection():
        with real_connection() as conn:
            yield _ExistenceCheckMisses(conn)

    monkeypatch.setattr(services.db, "connection", _racing_connection)
    rating, created = _rate(services, farmer, vet, 2, experience="Second opinion")
    monkeypatch.undo()

    assert created is False
    assert rating.id == original.id
    assert rating.score == 2
    assert [r.id for r in services.aggregator.list_provider_ratings(vet.id)] == [original.id]
    assert services.directory.get(vet.id).rating == 2.0
