from typing import Optional

from fastapi import APIRouter, Header, Query

from app.auth import assert_actor_authorized
from app.http_errors import raise_store_http_error
from app.models import (
    Appointment,
    AppointmentBookRequest,
    AppointmentStats,
    AppointmentStatusChange,
    AppointmentStatusUpdateRequest,
)
from app.services.appointments import appointment_workflow
from app.services.errors import StoreError

router = APIRouter(prefix="/appointments", tags=["appointments"])


@router.post("/book", response_model=Appointment, status_code=201)
def book_appointment(
    request: AppointmentBookRequest,
    authorization: Optional[str] = Header(default=None),
):
    assert_actor_authorized(actor_user_id=request.user_id, authorization=authorization)
    try:
        return appointment_workflow.book(request)
    except StoreError as exc:
        raise_store_http_error(exc)


@router.get("/veterinarian", response_model=list[Appointment])
def list_provider_appointments(
    user_id: str = Query(...),
    status: Optional[str] = Query(default=None),
    date: Optional[str] = Query(default=None),
    authorization: Optional[str] = Header(default=None),
):
    assert_actor_authorized(actor_user_id=user_id, authorization=authorization)
    try:
        return appointment_workflow.list_for_provider(user_id, status=status, on_date=date)
    except StoreError as exc:
        raise_store_http_error(exc)


@router.get("/user", response_model=list[Appointment])
def list_my_appointments(
    user_id: str = Query(...),
    authorization: Optional[str] = Header(default=None),
):
    assert_actor_authorized(actor_user_id=user_id, authorization=authorization)
    return appointment_workflow.list_for_requester(user_id)


@router.get("/stats", response_model=AppointmentStats)
def provider_stats(
    user_id: str = Query(...),
    authorization: Optional[str] = Header(default=None),
):
    assert_actor_authorized(actor_user_id=user_id, authorization=authorization)
    try:
        return appointment_workflow.stats(user_id)
    except StoreError as exc:
        raise_store_http_error(exc)


@router.get("/{appointment_id}", response_model=Appointment)
def get_appointment(
    appointment_id: str,
    user_id: str = Query(...),
    authorization: Optional[str] = Header(default=None),
):
    assert_actor_authorized(actor_user_id=user_id, authorization=authorization)
    try:
        return appointment_workflow.get(appointment_id, actor_user_id=user_id)
    except StoreError as exc:
        raise_store_http_error(exc)


@router.get("/{appointment_id}/history", response_model=list[AppointmentStatusChange])
def get_appointment_history(
    appointment_id: str,
    user_id: str = Query(...),
    authorization: Optional[str] = Header(default=None),
):
    assert_actor_authorized(actor_user_id=user_id, authorization=authorization)
    try:
        return appointment_workflow.history(appointment_id, actor_user_id=user_id)
    except StoreError as exc:
        raise_store_http_error(exc)


@router.put("/{appointment_id}/status", response_model=Appointment)
def update_appointment_status(
    appointment_id: str,
    request: AppointmentStatusUpdateRequest,
    authorization: Optional[str] = Header(default=None),
):
    assert_actor_authorized(actor_user_id=request.actor_user_id, authorization=authorization)
    try:
        return appointment_workflow.transition(
            appointment_id,
            actor_user_id=request.actor_user_id,
            action=request.action,  # type: ignore[arg-type]
            reason=request.reason,
            notes=request.notes,
        )
    except StoreError as exc:
        raise_store_http_error(exc)
