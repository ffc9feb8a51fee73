"""Audit trail of reservation changes, one batch per mutation"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from ...models import Reservation, ReservationChange, User, generate_batch_id

TRACKED_FIELDS = (
    "station_id",
    "reservation_date",
    "end_date",
    "start_time",
    "end_time",
    "status",
    "service_ids",
    "customer_name",
    "customer_phone",
    "customer_email",
    "vehicle_plate",
    "car_size",
    "price",
    "admin_notes",
    "customer_notes",
)


@dataclass(frozen=True)
class Actor:
    """Who performed a change: an admin user, a customer, or the system"""

    type: str
    username: str
    user_id: Optional[int] = None

    @classmethod
    def from_user(cls, user: User) -> "Actor":
        return cls("admin", user.username, user.id)

    @classmethod
    def customer(cls, name: Optional[str] = None) -> "Actor":
        return cls("customer", name or "customer")


SYSTEM = Actor("system", "system")


def _jsonable(value):
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def snapshot(reservation: Reservation) -> dict:
    return {field: _jsonable(getattr(reservation, field)) for field in TRACKED_FIELDS}


def _row(reservation: Reservation, batch_id: str, change_type: str, actor: Actor, **kwargs) -> ReservationChange:
    return ReservationChange(
        reservation_id=reservation.id,
        instance_id=reservation.instance_id,
        batch_id=batch_id,
        change_type=change_type,
        changed_by=actor.user_id,
        changed_by_username=actor.username,
        changed_by_type=actor.type,
        **kwargs,
    )


def created_changes(reservation: Reservation, actor: Actor) -> list[ReservationChange]:
    return [_row(reservation, generate_batch_id(), "created", actor, new_value=snapshot(reservation))]


def updated_changes(reservation: Reservation, before: dict, actor: Actor) -> list[ReservationChange]:
    """One row per field that differs from `before`, all sharing a batch id"""
    after = snapshot(reservation)
    batch_id = generate_batch_id()
    return [
        _row(reservation, batch_id, "updated", actor, field_name=field, old_value=before.get(field), new_value=value)
        for field, value in after.items()
        if before.get(field) != value
    ]


def deleted_changes(reservation: Reservation, actor: Actor) -> list[ReservationChange]:
    return [_row(reservation, generate_batch_id(), "deleted", actor, old_value=snapshot(reservation))]


def group_by_batch(changes: list[ReservationChange]) -> list[dict]:
    """Group change rows into batches, newest first"""
    batches: dict[str, dict] = {}
    for change in changes:
        batch = batches.get(change.batch_id)
        if batch is None:
            batch = batches[change.batch_id] = {
                "batchId": change.batch_id,
                "changeType": change.change_type,
                "changedBy": change.changed_by_username,
                "changedByType": change.changed_by_type,
                "createdAt": change.created_at,
                "changes": [],
            }
        batch["changes"].append(
            {"field": change.field_name, "oldValue": change.old_value, "newValue": change.new_value}
        )
    return sorted(batches.values(), key=lambda b: b["createdAt"] or datetime.min, reverse=True)
