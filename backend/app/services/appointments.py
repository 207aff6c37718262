import logging
import os
import sqlite3
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Dict, List, Optional, Tuple
from uuid import uuid4
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.models import (
    Appointment,
    AppointmentAction,
    AppointmentBookRequest,
    AppointmentStats,
    AppointmentStatus,
    AppointmentStatusChange,
)
from app.services.account_directory import PROVIDER_ROLE, AccountDirectory, account_directory
from app.services.database import Database, database, utc_now_iso
from app.services.errors import (
    InvalidTransitionError,
    StoreNotFoundError,
    StorePermissionError,
    StoreValidationError,
)
from app.services.notification_store import NotificationStore, notification_store

logger = logging.getLogger(__name__)

ANIMAL_TYPES = {"Cattle", "Buffalo", "Goat", "Sheep", "Pig", "Poultry", "Horse", "Other"}
URGENCY_LEVELS = {"emergency", "urgent", "normal"}
APPOINTMENT_STATUSES = {"pending", "confirmed", "completed", "cancelled"}
APPOINTMENT_TERMINAL_STATUSES = {"completed", "cancelled"}
ACTIVE_STATUSES = ("pending", "confirmed")

REQUIRED_BOOKING_FIELDS = (
    "patient_name",
    "patient_phone",
    "animal_type",
    "problem",
    "preferred_date",
    "preferred_time",
)


@dataclass(frozen=True)
class Transition:
    next_status: AppointmentStatus
    timestamp_field: str
    requires_reason: bool = False


# Terminal statuses have no outgoing edges, so no lookup from them can succeed.
APPOINTMENT_TRANSITIONS: Dict[Tuple[str, str], Transition] = {
    ("pending", "confirm"): Transition("confirmed", "confirmed_at"),
    ("pending", "cancel"): Transition("cancelled", "cancelled_at", requires_reason=True),
    ("confirmed", "complete"): Transition("completed", "completed_at"),
    ("confirmed", "cancel"): Transition("cancelled", "cancelled_at", requires_reason=True),
}


def legal_actions(status: str) -> List[str]:
    return sorted(action for (current, action) in APPOINTMENT_TRANSITIONS if current == status)


def _read_stats_timezone() -> Optional[tzinfo]:
    """Zone for "today" in stats; None means the server's local time."""
    name = os.getenv("APPOINTMENT_TIMEZONE", "").strip()
    if not name:
        return None
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown APPOINTMENT_TIMEZONE %r, using server local time", name)
        return None


def _parse_iso_date(value: str, *, field: str = "preferred_date") -> date:
    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError as exc:
        raise StoreValidationError(f"Invalid {field}. Use YYYY-MM-DD") from exc


class AppointmentWorkflow:
    def __init__(
        self,
        db: Database,
        directory: AccountDirectory,
        notifications: Optional[NotificationStore] = None,
        tz: Optional[tzinfo] = None,
    ):
        self._db = db
        self._directory = directory
        self._notifications = notifications
        self._tz = tz

    @staticmethod
    def _row_to_appointment(row: sqlite3.Row) -> Appointment:
        return Appointment(**{key: row[key] for key in row.keys()})

    def _notify(self, user_id: str, title: str, body: str, appointment_id: str) -> None:
        if self._notifications is None:
            return
        self._notifications.dispatch(
            user_id=user_id,
            title=title,
            body=body,
            category="appointment",
            deep_link=f"appointment:{appointment_id}",
        )

    def book(self, request: AppointmentBookRequest) -> Appointment:
        missing = [name for name in REQUIRED_BOOKING_FIELDS if not str(getattr(request, name) or "").strip()]
        if missing:
            raise StoreValidationError(f"Missing required fields: {', '.join(missing)}")
        animal_type = request.animal_type.strip()
        if animal_type not in ANIMAL_TYPES:
            raise StoreValidationError(f"Invalid animal_type. Allowed: {', '.join(sorted(ANIMAL_TYPES))}")
        urgency = (request.urgency or "").strip().lower() or "normal"
        if urgency not in URGENCY_LEVELS:
            raise StoreValidationError("Invalid urgency. Allowed: emergency, urgent, normal")
        preferred_date = _parse_iso_date(request.preferred_date)

        requester = self._directory.get(request.user_id)
        provider = self._directory.get_provider(request.provider_id)
        if provider.id == requester.id:
            raise StoreValidationError("You cannot book an appointment with yourself")

        now = utc_now_iso()
        appointment = Appointment(
            id=f"apt_{uuid4().hex[:10]}",
            provider_id=provider.id,
            provider_name=provider.name,
            requester_id=requester.id,
            requester_name=requester.name,
            patient_name=request.patient_name.strip(),
            patient_phone=request.patient_phone.strip(),
            animal_type=animal_type,
            animal_age=request.animal_age.strip(),
            problem=request.problem.strip(),
            preferred_date=preferred_date.isoformat(),
            preferred_time=request.preferred_time.strip(),
            urgency=urgency,  # type: ignore[arg-type]
            additional_notes=request.additional_notes.strip(),
            status="pending",
            created_at=now,
            updated_at=now,
        )
        with self._db.connection() as conn:
            conn.execute(
                """
                INSERT INTO appointments (
                    id, provider_id, provider_name, requester_id, requester_name, patient_name, patient_phone,
                    animal_type, animal_age, problem, preferred_date, preferred_time, urgency, additional_notes,
                    status, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    appointment.id,
                    appointment.provider_id,
                    appointment.provider_name,
                    appointment.requester_id,
                    appointment.requester_name,
                    appointment.patient_name,
                    appointment.patient_phone,
                    appointment.animal_type,
                    appointment.animal_age,
                    appointment.problem,
                    appointment.preferred_date,
                    appointment.preferred_time,
                    appointment.urgency,
                    appointment.additional_notes,
                    appointment.status,
                    appointment.created_at,
                    appointment.updated_at,
                ),
            )
            self._record_history(conn, appointment.id, requester.id, "none", "pending", "appointment requested", now)

        self._notify(
            provider.id,
            title="New appointment request",
            body=f"{requester.name} requested a visit for {appointment.patient_name} ({urgency}).",
            appointment_id=appointment.id,
        )
        return appointment

    @staticmethod
    def _record_history(
        conn: sqlite3.Connection,
        appointment_id: str,
        actor_id: str,
        from_status: str,
        to_status: str,
        note: str,
        created_at: str,
    ) -> None:
        conn.execute(
            """
            INSERT INTO appointment_status_history (id, appointment_id, actor_id, from_status, to_status, note, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (f"ash_{uuid4().hex[:10]}", appointment_id, actor_id, from_status, to_status, note, created_at),
        )

    def transition(
        self,
        appointment_id: str,
        *,
        actor_user_id: str,
        action: AppointmentAction,
        reason: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Appointment:
        with self._db.connection() as conn:
            row = conn.execute("SELECT * FROM appointments WHERE id = ?", (appointment_id,)).fetchone()
            if not row:
                raise StoreNotFoundError("Appointment not found")
            if row["provider_id"] != actor_user_id:
                raise StorePermissionError("Not authorized to update this appointment")

            current_status = str(row["status"])
            step = APPOINTMENT_TRANSITIONS.get((current_status, action))
            if step is None:
                raise InvalidTransitionError(f"Cannot {action} an appointment that is {current_status}")

            cleaned_reason = (reason or "").strip()
            if step.requires_reason and not cleaned_reason:
                raise StoreValidationError("Cancellation reason is required")

            now = utc_now_iso()
            updated = conn.execute(
                f"""
                UPDATE appointments
                SET status = ?, {step.timestamp_field} = ?, cancellation_reason = ?, notes = ?, updated_at = ?
                WHERE id = ? AND status = ?
                """,
                (
                    step.next_status,
                    now,
                    cleaned_reason if step.requires_reason else row["cancellation_reason"],
                    notes or row["notes"],
                    now,
                    appointment_id,
                    current_status,
                ),
            ).rowcount
            if updated != 1:
                raise InvalidTransitionError("Appointment status changed concurrently, reload and retry")
            self._record_history(
                conn,
                appointment_id,
                actor_user_id,
                current_status,
                step.next_status,
                cleaned_reason or (notes or ""),
                now,
            )
            refreshed = conn.execute("SELECT * FROM appointments WHERE id = ?", (appointment_id,)).fetchone()

        appointment = self._row_to_appointment(refreshed)
        logger.info("appointment %s: %s -> %s by %s", appointment_id, current_status, step.next_status, actor_user_id)
        self._notify(
            appointment.requester_id,
            title=f"Appointment {step.next_status}",
            body=f"Your appointment with {appointment.provider_name} on {appointment.preferred_date} is {step.next_status}.",
            appointment_id=appointment.id,
        )
        return appointment

    def _load(self, appointment_id: str) -> Appointment:
        with self._db.connection() as conn:
            row = conn.execute("SELECT * FROM appointments WHERE id = ?", (appointment_id,)).fetchone()
        if not row:
            raise StoreNotFoundError("Appointment not found")
        return self._row_to_appointment(row)

    def get(self, appointment_id: str, *, actor_user_id: str) -> Appointment:
        appointment = self._load(appointment_id)
        if actor_user_id not in {appointment.provider_id, appointment.requester_id}:
            if not self._directory.is_admin(actor_user_id):
                raise StorePermissionError("Not authorized to view this appointment")
        return appointment

    def history(self, appointment_id: str, *, actor_user_id: str) -> List[AppointmentStatusChange]:
        self.get(appointment_id, actor_user_id=actor_user_id)
        with self._db.connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM appointment_status_history
                WHERE appointment_id = ?
                ORDER BY created_at ASC, rowid ASC
                """,
                (appointment_id,),
            ).fetchall()
        return [AppointmentStatusChange(**{key: row[key] for key in row.keys()}) for row in rows]

    def _require_provider(self, provider_id: str) -> None:
        account = self._directory.get(provider_id)
        if account.role != PROVIDER_ROLE:
            raise StorePermissionError("Only veterinarians can view this")

    def list_for_provider(
        self,
        provider_id: str,
        *,
        status: Optional[str] = None,
        on_date: Optional[str] = None,
    ) -> List[Appointment]:
        self._require_provider(provider_id)
        query = "SELECT * FROM appointments WHERE provider_id = ?"
        params: List[str] = [provider_id]
        normalized_status = (status or "").strip().lower()
        if normalized_status and normalized_status != "all":
            if normalized_status not in APPOINTMENT_STATUSES:
                raise StoreValidationError("Invalid status. Allowed: all, pending, confirmed, completed, cancelled")
            query += " AND status = ?"
            params.append(normalized_status)
        if on_date:
            query += " AND preferred_date = ?"
            params.append(_parse_iso_date(on_date, field="date").isoformat())
        query += " ORDER BY preferred_date ASC, preferred_time ASC"

        with self._db.connection() as conn:
            rows = conn.execute(query, tuple(params)).fetchall()
        return [self._row_to_appointment(row) for row in rows]

    def list_for_requester(self, requester_id: str) -> List[Appointment]:
        with self._db.connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM appointments
                WHERE requester_id = ?
                ORDER BY preferred_date DESC, created_at DESC
                """,
                (requester_id,),
            ).fetchall()
        return [self._row_to_appointment(row) for row in rows]

    def stats(self, provider_id: str, now: Optional[datetime] = None) -> AppointmentStats:
        """Dashboard counters computed from the provider's current appointments.

        Weeks start on Sunday. ``today`` and ``this_week`` only count
        appointments that are still pending or confirmed. Preferred dates are
        local calendar dates, so ``now`` is converted to the workflow's zone
        (server local time when none is configured) before taking its date.
        """
        self._require_provider(provider_id)
        today = (now or datetime.now(timezone.utc)).astimezone(self._tz).date()
        start_of_week = today - timedelta(days=(today.weekday() + 1) % 7)
        end_of_week = start_of_week + timedelta(days=7)
        placeholders = ", ".join("?" for _ in ACTIVE_STATUSES)

        with self._db.connection() as conn:
            today_count = conn.execute(
                f"""
                SELECT COUNT(*) FROM appointments
                WHERE provider_id = ? AND preferred_date = ? AND status IN ({placeholders})
                """,
                (provider_id, today.isoformat(), *ACTIVE_STATUSES),
            ).fetchone()[0]
            week_count = conn.execute(
                f"""
                SELECT COUNT(*) FROM appointments
                WHERE provider_id = ? AND preferred_date >= ? AND preferred_date < ? AND status IN ({placeholders})
                """,
                (provider_id, start_of_week.isoformat(), end_of_week.isoformat(), *ACTIVE_STATUSES),
            ).fetchone()[0]
            patients = conn.execute(
                "SELECT COUNT(DISTINCT patient_name) FROM appointments WHERE provider_id = ?",
                (provider_id,),
            ).fetchone()[0]
            pending = conn.execute(
                "SELECT COUNT(*) FROM appointments WHERE provider_id = ? AND status = 'pending'",
                (provider_id,),
            ).fetchone()[0]

        return AppointmentStats(
            today=int(today_count),
            this_week=int(week_count),
            total_patients=int(patients),
            pending=int(pending),
        )


appointment_workflow = AppointmentWorkflow(database, account_directory, notification_store, tz=_read_stats_timezone())
