from typing import Optional

from fastapi import APIRouter, Header, Query, Response

from app.auth import assert_actor_authorized
from app.http_errors import raise_store_http_error
from app.models import ProviderRatingSummary, Rating, RatingSubmitRequest, RatingSubmitResult
from app.services.errors import StoreError
from app.services.rating_aggregator import rating_aggregator

router = APIRouter(prefix="/ratings", tags=["ratings"])


@router.post("", response_model=RatingSubmitResult, status_code=201)
def submit_rating(
    request: RatingSubmitRequest,
    response: Response,
    authorization: Optional[str] = Header(default=None),
):
    assert_actor_authorized(actor_user_id=request.reviewer_id, authorization=authorization)
    try:
        rating, created = rating_aggregator.submit_rating(
            reviewer_id=request.reviewer_id,
            provider_id=request.provider_id,
            score=request.score,
            review=request.review,
            experience=request.experience,
        )
        if not created:
            response.status_code = 200
        return RatingSubmitResult(
            rating=rating,
            created=created,
            provider_rating=rating_aggregator.provider_rating(request.provider_id),
        )
    except StoreError as exc:
        raise_store_http_error(exc)


@router.get("", response_model=list[Rating])
def list_all_ratings(
    actor_user_id: str = Query(...),
    authorization: Optional[str] = Header(default=None),
):
    assert_actor_authorized(actor_user_id=actor_user_id, authorization=authorization)
    try:
        return rating_aggregator.list_all_ratings(actor_user_id)
    except StoreError as exc:
        raise_store_http_error(exc)


@router.get("/providers/{provider_id}", response_model=ProviderRatingSummary)
def list_provider_ratings(provider_id: str):
    try:
        ratings = rating_aggregator.list_provider_ratings(provider_id)
        return ProviderRatingSummary(
            provider_id=provider_id,
            rating=rating_aggregator.provider_rating(provider_id),
            count=len(ratings),
            ratings=ratings,
        )
    except StoreError as exc:
        raise_store_http_error(exc)


@router.get("/providers/{provider_id}/mine", response_model=Optional[Rating])
def get_my_rating(
    provider_id: str,
    user_id: str = Query(...),
    authorization: Optional[str] = Header(default=None),
):
    assert_actor_authorized(actor_user_id=user_id, authorization=authorization)
    return rating_aggregator.get_reviewer_rating(user_id, provider_id)


@router.delete("/{rating_id}", response_model=Rating)
def delete_rating(
    rating_id: str,
    actor_user_id: str = Query(...),
    authorization: Optional[str] = Header(default=None),
):
    assert_actor_authorized(actor_user_id=actor_user_id, authorization=authorization)
    try:
        return rating_aggregator.delete_rating(rating_id=rating_id, actor_user_id=actor_user_id)
    except StoreError as exc:
        raise_store_http_error(exc)
