"""
In-memory order store used by the demo API and tests.

Real deployments plug the host's order subsystem in behind OrderStore.
"""
from __future__ import annotations

from typing import Optional

from application.dtos.payments import CallbackTransactionInfo, TransactionInfoUpdate
from domain.common.exceptions import NotFoundException
from domain.payment.entity import Order
from domain.payment.repository import OrderStore


class InMemoryOrderStore(OrderStore):
    def __init__(self) -> None:
        self._orders: dict[str, Order] = {}

    def add(self, order: Order) -> Order:
        self._orders[order.order_number] = order
        return order

    def get(self, order_number: str) -> Order:
        try:
            return self._orders[order_number]
        except KeyError:
            raise NotFoundException("Order", order_number) from None

    async def get_metadata(self, order: Order, key: str) -> Optional[str]:
        return self.get(order.order_number).metadata.get(key)

    async def set_metadata(self, order: Order, key: str, value: Optional[str]) -> None:
        stored = self.get(order.order_number)
        if value is None:
            stored.metadata.pop(key, None)
        else:
            stored.metadata[key] = value
        if stored is not order:
            order.metadata = dict(stored.metadata)

    async def apply_callback(self, order: Order, info: CallbackTransactionInfo) -> None:
        stored = self.get(order.order_number)
        stored.transaction.transaction_id = info.transaction_id
        stored.transaction.amount_authorized = info.amount_authorized
        stored.transaction.payment_status = info.payment_status

    async def apply_update(self, order: Order, info: TransactionInfoUpdate) -> None:
        stored = self.get(order.order_number)
        if info.transaction_id:
            stored.transaction.transaction_id = info.transaction_id
        stored.transaction.payment_status = info.payment_status
        if info.amount_refunded is not None:
            stored.transaction.amount_refunded = info.amount_refunded
