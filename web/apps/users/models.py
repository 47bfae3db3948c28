import uuid
from django.db import models


class UserModel(models.Model):
    # Opaque UUID identifier, also used as the rewards provider profile id
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Aggregates over placed orders; only ever incremented with F() expressions
    total_orders = models.PositiveIntegerField(default=0)
    total_spent = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "users"
