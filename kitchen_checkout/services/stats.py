"""
Dashboard Statistics

Read-side aggregation over the order, reservation and message stores.
"Today" and "this month" are calendar periods in UTC, relative to the
injected clock. Revenue counts every order regardless of its status.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

import pandas as pd

from kitchen_checkout.core.clock import Clock, SystemClock
from kitchen_checkout.schemas import (
    DashboardStats,
    MessageStatus,
    OrderStatus,
    ReservationStatus,
)
from kitchen_checkout.services.order_store import OrderStore
from kitchen_checkout.services.records import MessageStore, ReservationStore

logger = logging.getLogger(__name__)

COMPLETED_STATUSES = (OrderStatus.READY.value, OrderStatus.DELIVERED.value)


def _money_sum(values) -> Decimal:
    return sum(values, Decimal("0"))


class StatsAggregator:
    """Computes DashboardStats from the current store contents."""

    def __init__(
        self,
        orders: OrderStore,
        reservations: ReservationStore,
        messages: MessageStore,
        clock: Optional[Clock] = None,
    ):
        self.orders = orders
        self.reservations = reservations
        self.messages = messages
        self.clock = clock or SystemClock()

    def _orders_frame(self) -> pd.DataFrame:
        df = pd.DataFrame(
            [
                {
                    "created_at": order.created_at,
                    "total": order.total,
                    "order_status": order.order_status.value,
                }
                for order in self.orders.list()
            ],
            columns=["created_at", "total", "order_status"],
        )
        df["created_at"] = pd.to_datetime(df["created_at"], utc=True)
        return df

    def _status_frame(self, records) -> pd.DataFrame:
        return pd.DataFrame(
            [{"status": record.status.value} for record in records],
            columns=["status"],
        )

    def dashboard_stats(self, now: Optional[datetime] = None) -> DashboardStats:
        now = pd.Timestamp(now or self.clock.now())
        now = now.tz_localize("UTC") if now.tzinfo is None else now.tz_convert("UTC")

        orders = self._orders_frame()
        reservations = self._status_frame(self.reservations.list())
        messages = self._status_frame(self.messages.list())

        created = orders["created_at"]
        is_today = created.dt.date == now.date()
        is_this_month = (created.dt.year == now.year) & (created.dt.month == now.month)

        stats = DashboardStats(
            total_orders=len(orders),
            today_orders=int(is_today.sum()),
            monthly_orders=int(is_this_month.sum()),
            total_revenue=_money_sum(orders["total"]),
            today_revenue=_money_sum(orders.loc[is_today, "total"]),
            pending_orders=int((orders["order_status"] == OrderStatus.PENDING.value).sum()),
            completed_orders=int(orders["order_status"].isin(COMPLETED_STATUSES).sum()),
            total_reservations=len(reservations),
            pending_reservations=int(
                (reservations["status"] == ReservationStatus.PENDING.value).sum()
            ),
            total_messages=len(messages),
            unread_messages=int((messages["status"] == MessageStatus.UNREAD.value).sum()),
        )

        logger.debug(
            f"Dashboard stats: {stats.total_orders} orders, "
            f"${stats.total_revenue:.2f} revenue"
        )
        return stats
