from typing import NoReturn

from fastapi import HTTPException

from app.services.errors import (
    StoreConflictError,
    StoreError,
    StoreNotFoundError,
    StorePermissionError,
)


def raise_store_http_error(exc: StoreError) -> NoReturn:
    if isinstance(exc, StoreNotFoundError):
        raise HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, StorePermissionError):
        raise HTTPException(status_code=403, detail=str(exc))
    if isinstance(exc, StoreConflictError):
        raise HTTPException(status_code=409, detail=str(exc))
    raise HTTPException(status_code=400, detail=str(exc))
