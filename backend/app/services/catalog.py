import json
import sqlite3
from typing import List, Optional, Sequence, Union
from uuid import uuid4

from app.models import ImageRef, Listing, Product
from app.services.account_directory import AccountDirectory, account_directory
from app.services.asset_store import ASSET_ID_PATTERN
from app.services.database import Database, database, utc_now_iso
from app.services.errors import StoreNotFoundError, StorePermissionError, StoreValidationError

SELLING_ROLES = {"farmer", "seller", "veterinarian"}

CATALOG_TABLES = {
    "listing": "listings",
    "product": "products",
}

CatalogItem = Union[Listing, Product]


def _load_images(raw: str) -> List[ImageRef]:
    try:
        values = json.loads(raw or "[]")
    except json.JSONDecodeError:
        return []
    if not isinstance(values, list):
        return []
    return [ImageRef(**value) for value in values if isinstance(value, dict)]


def _clean_images(images: Optional[Sequence[ImageRef]]) -> List[ImageRef]:
    cleaned: List[ImageRef] = []
    for image in images or []:
        url = image.url.strip()
        asset_id = image.asset_id.strip()
        if not url or not asset_id:
            raise StoreValidationError("Each image needs a url and an asset_id")
        if not ASSET_ID_PATTERN.match(asset_id):
            raise StoreValidationError(f"Invalid asset_id: {asset_id}")
        cleaned.append(ImageRef(url=url, asset_id=asset_id))
    return cleaned


class Catalog:
    """Seller-owned listings (livestock) and products (produce)."""

    def __init__(self, db: Database, directory: AccountDirectory):
        self._db = db
        self._directory = directory

    @staticmethod
    def _table(kind: str) -> str:
        try:
            return CATALOG_TABLES[kind]
        except KeyError:
            raise StoreValidationError(f"Unknown catalog kind: {kind}") from None

    @staticmethod
    def _row_to_item(kind: str, row: sqlite3.Row) -> CatalogItem:
        images = _load_images(row["images_json"])
        if kind == "listing":
            return Listing(
                id=row["id"],
                seller_id=row["seller_id"],
                title=row["title"],
                breed=row["breed"],
                animal_type=row["animal_type"],
                description=row["description"],
                price=float(row["price"]),
                images=images,
                created_at=row["created_at"],
            )
        return Product(
            id=row["id"],
            seller_id=row["seller_id"],
            title=row["title"],
            category=row["category"],
            unit=row["unit"],
            description=row["description"],
            price=float(row["price"]),
            images=images,
            created_at=row["created_at"],
        )

    def _check_seller(self, seller_id: str) -> None:
        seller = self._directory.get(seller_id)
        if seller.role not in SELLING_ROLES:
            raise StorePermissionError("Only farmers, sellers and veterinarians can list items")

    @staticmethod
    def _check_common(title: str, description: str, price: float) -> None:
        if not title.strip():
            raise StoreValidationError("Title is required")
        if not description.strip():
            raise StoreValidationError("Description is required")
        if price <= 0:
            raise StoreValidationError("Price must be greater than 0")

    def create_listing(
        self,
        *,
        seller_id: str,
        title: str,
        breed: str,
        animal_type: str,
        description: str,
        price: float,
        images: Optional[Sequence[ImageRef]] = None,
    ) -> Listing:
        self._check_common(title, description, price)
        if not breed.strip():
            raise StoreValidationError("Breed is required")
        if not animal_type.strip():
            raise StoreValidationError("Animal type is required")
        cleaned_images = _clean_images(images)
        self._check_seller(seller_id)

        listing = Listing(
            id=f"lst_{uuid4().hex[:10]}",
            seller_id=seller_id,
            title=title.strip(),
            breed=breed.strip(),
            animal_type=animal_type.strip(),
            description=description.strip(),
            price=float(price),
            images=cleaned_images,
            created_at=utc_now_iso(),
        )
        with self._db.connection() as conn:
            conn.execute(
                """
                INSERT INTO listings (id, seller_id, title, breed, animal_type, description, price, images_json, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    listing.id,
                    listing.seller_id,
                    listing.title,
                    listing.breed,
                    listing.animal_type,
                    listing.description,
                    listing.price,
                    json.dumps([image.model_dump() for image in listing.images]),
                    listing.created_at,
                ),
            )
        return listing

    def create_product(
        self,
        *,
        seller_id: str,
        title: str,
        category: str,
        description: str,
        price: float,
        unit: str = "piece",
        images: Optional[Sequence[ImageRef]] = None,
    ) -> Product:
        self._check_common(title, description, price)
        if not category.strip():
            raise StoreValidationError("Category is required")
        cleaned_images = _clean_images(images)
        self._check_seller(seller_id)

        product = Product(
            id=f"prd_{uuid4().hex[:10]}",
            seller_id=seller_id,
            title=title.strip(),
            category=category.strip(),
            unit=(unit or "piece").strip(),
            description=description.strip(),
            price=float(price),
            images=cleaned_images,
            created_at=utc_now_iso(),
        )
        with self._db.connection() as conn:
            conn.execute(
                """
                INSERT INTO products (id, seller_id, title, category, unit, description, price, images_json, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    product.id,
                    product.seller_id,
                    product.title,
                    product.category,
                    product.unit,
                    product.description,
                    product.price,
                    json.dumps([image.model_dump() for image in product.images]),
                    product.created_at,
                ),
            )
        return product

    def get(self, kind: str, item_id: str) -> CatalogItem:
        table = self._table(kind)
        with self._db.connection() as conn:
            row = conn.execute(f"SELECT * FROM {table} WHERE id = ?", (item_id,)).fetchone()
        if not row:
            raise StoreNotFoundError(f"{kind.title()} not found")
        return self._row_to_item(kind, row)

    def list_owned(self, kind: str, seller_id: str) -> List[CatalogItem]:
        table = self._table(kind)
        with self._db.connection() as conn:
            rows = conn.execute(
                f"SELECT * FROM {table} WHERE seller_id = ? ORDER BY created_at DESC",
                (seller_id,),
            ).fetchall()
        return [self._row_to_item(kind, row) for row in rows]

    def delete_records(self, kind: str, item_ids: Sequence[str]) -> int:
        """Delete rows by id; ids that are already gone are skipped."""
        table = self._table(kind)
        if not item_ids:
            return 0
        deleted = 0
        with self._db.connection() as conn:
            for item_id in item_ids:
                deleted += conn.execute(f"DELETE FROM {table} WHERE id = ?", (item_id,)).rowcount
        return deleted


catalog = Catalog(database, account_directory)
