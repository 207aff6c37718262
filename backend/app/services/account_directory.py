import sqlite3
from typing import Optional
from uuid import uuid4

from app.models import Account
from app.services.database import Database, database, utc_now_iso
from app.services.errors import StoreConflictError, StoreNotFoundError, StoreValidationError

ACCOUNT_ROLES = {"farmer", "seller", "veterinarian", "buyer", "admin"}
PROVIDER_ROLE = "veterinarian"
ADMIN_ROLE = "admin"


class AccountDirectory:
    """Identity and role lookups.

    The only field this core writes on an existing account is the provider
    rating aggregate, through ``set_provider_rating``.
    """

    def __init__(self, db: Database):
        self._db = db

    @staticmethod
    def _row_to_account(row: sqlite3.Row) -> Account:
        return Account(
            id=row["id"],
            name=row["name"],
            email=row["email"],
            role=row["role"],
            phone=row["phone"],
            location=row["location"],
            clinic_name=row["clinic_name"],
            specialization=row["specialization"],
            rating=float(row["rating"]),
            created_at=row["created_at"],
        )

    def create(
        self,
        *,
        name: str,
        email: str,
        role: str,
        phone: str = "",
        location: str = "",
        clinic_name: str = "",
        specialization: str = "",
    ) -> Account:
        if role not in ACCOUNT_ROLES:
            raise StoreValidationError(f"Invalid role. Allowed: {', '.join(sorted(ACCOUNT_ROLES))}")
        if not name.strip():
            raise StoreValidationError("Name is required")
        normalized_email = email.strip().lower()
        if "@" not in normalized_email:
            raise StoreValidationError("Please provide a valid email")

        account = Account(
            id=f"acc_{uuid4().hex[:10]}",
            name=name.strip(),
            email=normalized_email,
            role=role,  # type: ignore[arg-type]
            phone=phone.strip(),
            location=location.strip(),
            clinic_name=clinic_name.strip(),
            specialization=specialization.strip(),
            rating=0.0,
            created_at=utc_now_iso(),
        )
        try:
            with self._db.connection() as conn:
                conn.execute(
                    """
                    INSERT INTO accounts (
                        id, name, email, role, phone, location, clinic_name, specialization, rating, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        account.id,
                        account.name,
                        account.email,
                        account.role,
                        account.phone,
                        account.location,
                        account.clinic_name,
                        account.specialization,
                        account.rating,
                        account.created_at,
                    ),
                )
        except sqlite3.IntegrityError as exc:
            raise StoreConflictError("Email is already registered") from exc
        return account

    def find(self, account_id: str) -> Optional[Account]:
        with self._db.connection() as conn:
            row = conn.execute("SELECT * FROM accounts WHERE id = ?", (account_id,)).fetchone()
        return self._row_to_account(row) if row else None

    def get(self, account_id: str) -> Account:
        account = self.find(account_id)
        if account is None:
            raise StoreNotFoundError("Account not found")
        return account

    def require_role(self, account_id: str, role: str, not_found_message: str) -> Account:
        account = self.find(account_id)
        if account is None or account.role != role:
            raise StoreNotFoundError(not_found_message)
        return account

    def get_provider(self, provider_id: str) -> Account:
        return self.require_role(provider_id, PROVIDER_ROLE, "Veterinarian not found")

    def is_admin(self, account_id: str) -> bool:
        account = self.find(account_id)
        return account is not None and account.role == ADMIN_ROLE

    def set_provider_rating(self, provider_id: str, rating: float) -> None:
        with self._db.connection() as conn:
            conn.execute(
                "UPDATE accounts SET rating = ? WHERE id = ? AND role = ?",
                (rating, provider_id, PROVIDER_ROLE),
            )

    def list_provider_ids(self) -> list[str]:
        with self._db.connection() as conn:
            rows = conn.execute("SELECT id FROM accounts WHERE role = ? ORDER BY id", (PROVIDER_ROLE,)).fetchall()
        return [row["id"] for row in rows]

    def delete(self, account_id: str) -> bool:
        with self._db.connection() as conn:
            deleted = conn.execute("DELETE FROM accounts WHERE id = ?", (account_id,)).rowcount
        return deleted > 0


account_directory = AccountDirectory(database)
