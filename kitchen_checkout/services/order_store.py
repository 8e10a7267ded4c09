"""
Order Store

Append-only durable collection of Order records, the persistence
collaborator of the checkout flow and the data source of the back-office:

- create(): assign id/timestamps, append, persist
- list()/get(): read side for dashboards
- update_status(): the only mutation an order sees after creation
- export_excel(): spreadsheet export for the back-office

Single writer, client-local: the file lock protects against a second
process, not against concurrent checkout flows in the same event loop.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Union

import pandas as pd

from kitchen_checkout.core.clock import Clock, SystemClock
from kitchen_checkout.core.exceptions import OrderNotFoundError, StorageError
from kitchen_checkout.schemas import Order, OrderStatus
from kitchen_checkout.services.storage import JsonCollection

logger = logging.getLogger(__name__)


class OrderStore:
    """File-backed order collection."""

    ORDER_COLUMNS = [
        "order_id",
        "transaction_id",
        "date_time",
        "customer_name",
        "email",
        "phone",
        "delivery_type",
        "delivery_address",
        "items",
        "special_instructions",
        "subtotal",
        "tax",
        "delivery_fee",
        "total",
        "payment_method",
        "payment_status",
        "order_status",
        "updated_at",
    ]

    def __init__(
        self,
        path: Path,
        clock: Optional[Clock] = None,
        lock_timeout: float = 30,
    ):
        self.clock = clock or SystemClock()
        self._collection = JsonCollection(path, lock_timeout=lock_timeout)

    @property
    def path(self) -> Path:
        return self._collection.path

    @staticmethod
    def _generate_id(now: datetime, taken: set[str]) -> str:
        """ORD-<epoch ms>, bumped by a millisecond until unused."""
        millis = int(now.timestamp() * 1000)
        while f"ORD-{millis}" in taken:
            millis += 1
        return f"ORD-{millis}"

    @staticmethod
    def _serialize(order: Order) -> dict[str, Any]:
        return order.model_dump(mode="json", by_alias=True)

    # =========================================================================
    # WRITE SIDE
    # =========================================================================

    def create(self, order: Order) -> Order:
        """
        Persist a new order.

        Args:
            order: Order built by the checkout flow; id and timestamps are
                assigned when missing

        Returns:
            The stored order

        Raises:
            StorageError: Duplicate id or store unavailable
        """
        now = self.clock.now()

        with self._collection.transaction() as records:
            taken = {str(record.get("id")) for record in records}
            order_id = order.id or self._generate_id(now, taken)
            if order_id in taken:
                raise StorageError(f"Order {order_id} already exists")

            stored = order.model_copy(update={
                "id": order_id,
                "created_at": order.created_at or now,
                "updated_at": order.updated_at or now,
            })
            records.append(self._serialize(stored))

        logger.info(f"Order {stored.id} stored - ${stored.total:.2f}")
        return stored

    def update_status(self, order_id: str, status: Union[OrderStatus, str]) -> Order:
        """
        Move an order to another status and touch updatedAt.

        Raises:
            ValueError: status is not an OrderStatus value
            OrderNotFoundError: no order has that id
        """
        new_status = OrderStatus(status)
        now = self.clock.now()

        def apply(record: dict[str, Any]) -> dict[str, Any]:
            current = Order.model_validate(record)
            updated = current.model_copy(update={"order_status": new_status, "updated_at": now})
            return self._serialize(updated)

        record = self._collection.update(order_id, apply)
        if record is None:
            raise OrderNotFoundError(order_id)

        logger.info(f"Order {order_id} status -> {new_status.value}")
        return Order.model_validate(record)

    def clear(self) -> None:
        self._collection.clear()

    # =========================================================================
    # READ SIDE
    # =========================================================================

    def list(self, status: Optional[Union[OrderStatus, str]] = None) -> list[Order]:
        orders = [Order.model_validate(record) for record in self._collection.all()]
        if status is not None:
            wanted = OrderStatus(status)
            orders = [order for order in orders if order.order_status == wanted]
        return orders

    def get(self, order_id: str) -> Order:
        record = self._collection.find(order_id)
        if record is None:
            raise OrderNotFoundError(order_id)
        return Order.model_validate(record)

    # =========================================================================
    # EXPORT
    # =========================================================================

    def export_excel(self, path: Path) -> Path:
        """Write every order as one spreadsheet row."""
        rows = [
            {
                "order_id": order.id,
                "transaction_id": order.transaction_id,
                "date_time": order.created_at.isoformat() if order.created_at else None,
                "customer_name": order.customer_name,
                "email": order.email,
                "phone": order.phone,
                "delivery_type": order.delivery_type.value,
                "delivery_address": order.delivery_address,
                "items": "; ".join(
                    f"{item.dish_name} x{item.quantity}" for item in order.line_items
                ),
                "special_instructions": order.special_instructions,
                "subtotal": float(order.subtotal),
                "tax": float(order.tax),
                "delivery_fee": float(order.delivery_fee),
                "total": float(order.total),
                "payment_method": order.payment_method.value,
                "payment_status": order.payment_status.value,
                "order_status": order.order_status.value,
                "updated_at": order.updated_at.isoformat() if order.updated_at else None,
            }
            for order in self.list()
        ]

        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        df = pd.DataFrame(rows, columns=self.ORDER_COLUMNS)
        df.to_excel(str(path), index=False, engine="openpyxl")

        logger.info(f"{len(rows)} order(s) exported to {path}")
        return path
