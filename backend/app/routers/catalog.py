from typing import Optional

from fastapi import APIRouter, Header, Query

from app.auth import assert_actor_authorized
from app.http_errors import raise_store_http_error
from app.models import DeletionReport, Listing, ListingCreateRequest, Product, ProductCreateRequest
from app.services.cascade import lifecycle_cascade
from app.services.catalog import catalog
from app.services.errors import StoreError

router = APIRouter(tags=["catalog"])


@router.post("/listings", response_model=Listing, status_code=201)
def create_listing(
    request: ListingCreateRequest,
    authorization: Optional[str] = Header(default=None),
):
    assert_actor_authorized(actor_user_id=request.user_id, authorization=authorization)
    try:
        return catalog.create_listing(
            seller_id=request.user_id,
            title=request.title,
            breed=request.breed,
            animal_type=request.animal_type,
            description=request.description,
            price=request.price,
            images=request.images,
        )
    except StoreError as exc:
        raise_store_http_error(exc)


@router.get("/listings", response_model=list[Listing])
def list_seller_listings(seller_id: str = Query(...)):
    try:
        return catalog.list_owned("listing", seller_id)
    except StoreError as exc:
        raise_store_http_error(exc)


@router.get("/listings/{listing_id}", response_model=Listing)
def get_listing(listing_id: str):
    try:
        return catalog.get("listing", listing_id)
    except StoreError as exc:
        raise_store_http_error(exc)


@router.delete("/listings/{listing_id}", response_model=DeletionReport)
def delete_listing(
    listing_id: str,
    actor_user_id: str = Query(...),
    authorization: Optional[str] = Header(default=None),
):
    assert_actor_authorized(actor_user_id=actor_user_id, authorization=authorization)
    try:
        return lifecycle_cascade.delete_listing(listing_id=listing_id, actor_user_id=actor_user_id)
    except StoreError as exc:
        raise_store_http_error(exc)


@router.post("/products", response_model=Product, status_code=201)
def create_product(
    request: ProductCreateRequest,
    authorization: Optional[str] = Header(default=None),
):
    assert_actor_authorized(actor_user_id=request.user_id, authorization=authorization)
    try:
        return catalog.create_product(
            seller_id=request.user_id,
            title=request.title,
            category=request.category,
            unit=request.unit,
            description=request.description,
            price=request.price,
            images=request.images,
        )
    except StoreError as exc:
        raise_store_http_error(exc)


@router.get("/products", response_model=list[Product])
def list_seller_products(seller_id: str = Query(...)):
    try:
        return catalog.list_owned("product", seller_id)
    except StoreError as exc:
        raise_store_http_error(exc)


@router.get("/products/{product_id}", response_model=Product)
def get_product(product_id: str):
    try:
        return catalog.get("product", product_id)
    except StoreError as exc:
        raise_store_http_error(exc)


@router.delete("/products/{product_id}", response_model=DeletionReport)
def delete_product(
    product_id: str,
    actor_user_id: str = Query(...),
    authorization: Optional[str] = Header(default=None),
):
    assert_actor_authorized(actor_user_id=actor_user_id, authorization=authorization)
    try:
        return lifecycle_cascade.delete_product(product_id=product_id, actor_user_id=actor_user_id)
    except StoreError as exc:
        raise_store_http_error(exc)
