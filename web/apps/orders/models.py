import uuid
from django.db import models


class OrderModel(models.Model):
    # UUID PK exposed by the API
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    class Status(models.TextChoices):
        PLACED = "PLACED"
        CANCELLED = "CANCELLED"

    user = models.ForeignKey("users.UserModel", on_delete=models.PROTECT, related_name="orders")
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PLACED)
    total_amount = models.DecimalField(max_digits=12, decimal_places=2)
    discount_applied = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "orders"
        ordering = ["-created_at"]


class OrderLineModel(models.Model):
    # Frozen copy of a cart line at placement time
    order = models.ForeignKey(OrderModel, on_delete=models.CASCADE, related_name="lines")
    position = models.PositiveSmallIntegerField()
    sku = models.CharField(max_length=32)
    name = models.CharField(max_length=200)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    quantity = models.PositiveIntegerField()

    class Meta:
        db_table = "order_lines"
        ordering = ["position"]
        constraints = [
            models.UniqueConstraint(fields=["order", "position"], name="uniq_order_line_position"),
        ]
