from typing import Optional

from fastapi import APIRouter, Header, Query

from app.auth import assert_actor_authorized
from app.http_errors import raise_store_http_error
from app.models import RatingRepairResult
from app.services.account_directory import account_directory
from app.services.errors import StoreError, StorePermissionError
from app.services.rating_aggregator import rating_aggregator

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/ratings/repair", response_model=RatingRepairResult)
def repair_provider_ratings(
    actor_user_id: str = Query(...),
    authorization: Optional[str] = Header(default=None),
):
    assert_actor_authorized(actor_user_id=actor_user_id, authorization=authorization)
    try:
        if not account_directory.is_admin(actor_user_id):
            raise StorePermissionError("Admin only")
        return RatingRepairResult(providers=rating_aggregator.repair_all_ratings())
    except StoreError as exc:
        raise_store_http_error(exc)
