"""
Collaborator Record Stores

Reservations and contact messages are produced by forms outside the
checkout core. They live in their own JSON collections so the dashboard can
count them next to the orders.
"""

import logging
from enum import Enum
from pathlib import Path
from typing import Optional, Type, Union

from pydantic import BaseModel

from kitchen_checkout.core.clock import Clock, SystemClock
from kitchen_checkout.core.exceptions import RecordNotFoundError
from kitchen_checkout.schemas import (
    ContactMessage,
    MessageStatus,
    Reservation,
    ReservationStatus,
)
from kitchen_checkout.services.storage import JsonCollection

logger = logging.getLogger(__name__)


class _RecordStore:
    """Shared add/list/update_status over a JSON collection."""

    model: Type[BaseModel]
    status_enum: Type[Enum]
    id_prefix: str
    kind: str

    def __init__(self, path: Path, clock: Optional[Clock] = None, lock_timeout: float = 30):
        self.clock = clock or SystemClock()
        self._collection = JsonCollection(path, lock_timeout=lock_timeout)

    def add(self, record: BaseModel) -> BaseModel:
        now = self.clock.now()
        with self._collection.transaction() as records:
            taken = {str(existing.get("id")) for existing in records}
            millis = int(now.timestamp() * 1000)
            while f"{self.id_prefix}-{millis}" in taken:
                millis += 1
            stored = record.model_copy(update={
                "id": record.id or f"{self.id_prefix}-{millis}",
                "created_at": record.created_at or now,
            })
            records.append(stored.model_dump(mode="json", by_alias=True))

        logger.info(f"{self.kind} {stored.id} stored")
        return stored

    def list(self, status: Optional[Union[Enum, str]] = None) -> list:
        records = [self.model.model_validate(r) for r in self._collection.all()]
        if status is not None:
            wanted = self.status_enum(status)
            records = [r for r in records if r.status == wanted]
        return records

    def update_status(self, record_id: str, status: Union[Enum, str]) -> BaseModel:
        new_status = self.status_enum(status)

        def apply(record: dict) -> dict:
            record["status"] = new_status.value
            return record

        updated = self._collection.update(record_id, apply)
        if updated is None:
            raise RecordNotFoundError(self.kind, record_id)
        return self.model.model_validate(updated)

    def clear(self) -> None:
        self._collection.clear()


class ReservationStore(_RecordStore):
    model = Reservation
    status_enum = ReservationStatus
    id_prefix = "RES"
    kind = "Reservation"


class MessageStore(_RecordStore):
    model = ContactMessage
    status_enum = MessageStatus
    id_prefix = "MSG"
    kind = "Message"
