import os
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Iterator


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class Database:
    """Shared SQLite datastore for accounts, catalog, ratings and appointments.

    Every operation opens its own connection while holding the process lock,
    so callers must not nest ``connection()`` blocks.
    """

    db_path: str

    def __post_init__(self) -> None:
        self._lock = Lock()
        path = Path(self.db_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.db_path = str(path)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            conn = self._connect()
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise
            finally:
                conn.close()

    def _init_db(self) -> None:
        with self.connection() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS accounts (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    email TEXT NOT NULL UNIQUE,
                    role TEXT NOT NULL,
                    phone TEXT NOT NULL DEFAULT '',
                    location TEXT NOT NULL DEFAULT '',
                    clinic_name TEXT NOT NULL DEFAULT '',
                    specialization TEXT NOT NULL DEFAULT '',
                    rating REAL NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS listings (
                    id TEXT PRIMARY KEY,
                    seller_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    breed TEXT NOT NULL,
                    animal_type TEXT NOT NULL,
                    description TEXT NOT NULL,
                    price REAL NOT NULL,
                    images_json TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS products (
                    id TEXT PRIMARY KEY,
                    seller_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    category TEXT NOT NULL,
                    unit TEXT NOT NULL,
                    description TEXT NOT NULL,
                    price REAL NOT NULL,
                    images_json TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS ratings (
                    id TEXT PRIMARY KEY,
                    reviewer_id TEXT NOT NULL,
                    provider_id TEXT NOT NULL,
                    score INTEGER NOT NULL CHECK (score BETWEEN 1 AND 5),
                    review TEXT,
                    experience TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    CHECK (reviewer_id <> provider_id)
                )
                """
            )
            conn.execute(
                """
                CREATE UNIQUE INDEX IF NOT EXISTS uq_ratings_reviewer_provider
                ON ratings (reviewer_id, provider_id)
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS appointments (
                    id TEXT PRIMARY KEY,
                    provider_id TEXT NOT NULL,
                    provider_name TEXT NOT NULL,
                    requester_id TEXT NOT NULL,
                    requester_name TEXT NOT NULL,
                    patient_name TEXT NOT NULL,
                    patient_phone TEXT NOT NULL,
                    animal_type TEXT NOT NULL,
                    animal_age TEXT NOT NULL DEFAULT '',
                    problem TEXT NOT NULL,
                    preferred_date TEXT NOT NULL,
                    preferred_time TEXT NOT NULL,
                    urgency TEXT NOT NULL DEFAULT 'normal',
                    additional_notes TEXT NOT NULL DEFAULT '',
                    status TEXT NOT NULL DEFAULT 'pending',
                    confirmed_at TEXT,
                    completed_at TEXT,
                    cancelled_at TEXT,
                    cancellation_reason TEXT,
                    notes TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS ix_appointments_provider_status
                ON appointments (provider_id, status)
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS appointment_status_history (
                    id TEXT PRIMARY KEY,
                    appointment_id TEXT NOT NULL,
                    actor_id TEXT NOT NULL,
                    from_status TEXT NOT NULL,
                    to_status TEXT NOT NULL,
                    note TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
                """
            )


default_db = str(Path(__file__).resolve().parents[2] / "data" / "marketplace.sqlite3")
database = Database(db_path=os.getenv("MARKETPLACE_DB_PATH", default_db))
