from typing import Optional

from fastapi import APIRouter, Header, Query

from app.auth import assert_actor_authorized
from app.http_errors import raise_store_http_error
from app.models import Account, AccountCreateRequest, DeletionReport
from app.services.account_directory import account_directory
from app.services.cascade import lifecycle_cascade
from app.services.errors import StoreError

router = APIRouter(prefix="/accounts", tags=["accounts"])


@router.post("", response_model=Account, status_code=201)
def register_account(request: AccountCreateRequest):
    try:
        return account_directory.create(
            name=request.name,
            email=request.email,
            role=request.role,
            phone=request.phone,
            location=request.location,
            clinic_name=request.clinic_name,
            specialization=request.specialization,
        )
    except StoreError as exc:
        raise_store_http_error(exc)


@router.get("/{account_id}", response_model=Account)
def get_account(account_id: str):
    try:
        return account_directory.get(account_id)
    except StoreError as exc:
        raise_store_http_error(exc)


@router.delete("/{account_id}", response_model=DeletionReport)
def delete_account(
    account_id: str,
    actor_user_id: str = Query(...),
    authorization: Optional[str] = Header(default=None),
):
    assert_actor_authorized(actor_user_id=actor_user_id, authorization=authorization)
    try:
        return lifecycle_cascade.delete_account(account_id=account_id, actor_user_id=actor_user_id)
    except StoreError as exc:
        raise_store_http_error(exc)
