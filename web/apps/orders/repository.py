"""Repository layer for persisting orders.

This module contains a small repository used by the workflow to persist
orders and their frozen cart lines. It keeps a thin interface so the
domain layer is not coupled to Django ORM details.
"""

from typing import Optional

from django.core.exceptions import ValidationError
from django.db import DatabaseError, transaction

from .domain import CartLine, Order, OrderStatus, OrderStore, StoreError, quantize, with_id
from .models import OrderLineModel, OrderModel


def to_domain(obj: OrderModel) -> Order:
    """Map an ``OrderModel`` (with its lines) into a domain ``Order``."""
    items = tuple(
        CartLine(sku=line.sku, name=line.name, unit_price=quantize(line.unit_price), quantity=line.quantity)
        for line in obj.lines.all()
    )
    return Order(
        id=str(obj.id),
        user_id=str(obj.user_id),
        items=items,
        total_amount=quantize(obj.total_amount),
        discount_applied=quantize(obj.discount_applied),
        status=OrderStatus(obj.status),
        created_at=obj.created_at,
    )


class DjangoOrderStore(OrderStore):
    """Repository that persists Order domain objects using Django ORM.

    The order row and its lines are written in one transaction; a failure
    leaves nothing behind.
    """

    def save(self, order: Order) -> Order:
        """Persist a new order record and its lines.

        Args:
            order: Domain ``Order`` without an id.

        Returns:
            The same order carrying the assigned UUID and creation time.

        Raises:
            StoreError: When the database rejects the write.
        """
        try:
            with transaction.atomic():
                obj = OrderModel.objects.create(
                    user_id=order.user_id,
                    status=order.status.value,
                    total_amount=order.total_amount,
                    discount_applied=order.discount_applied,
                )
                OrderLineModel.objects.bulk_create(
                    [
                        OrderLineModel(
                            order=obj,
                            position=pos,
                            sku=line.sku,
                            name=line.name,
                            unit_price=line.unit_price,
                            quantity=line.quantity,
                        )
                        for pos, line in enumerate(order.items)
                    ]
                )
        except DatabaseError as e:
            raise StoreError(f"order write failed: {e}") from e
        return with_id(order, str(obj.id), obj.created_at)

    def get(self, order_id: str) -> Optional[Order]:
        try:
            obj = OrderModel.objects.prefetch_related("lines").get(pk=order_id)
        except (OrderModel.DoesNotExist, ValidationError, ValueError):
            return None
        return to_domain(obj)
