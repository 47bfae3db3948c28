"""Repository layer for user statistics.

Implements the ``UserStore`` port on top of the Django ORM. Statistics
are only ever changed with a single ``UPDATE ... SET col = col + value``
so two placements for the same user cannot overwrite each other.
"""

from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import DatabaseError
from django.db.models import F

from apps.orders.domain import StoreError, User, UserNotFoundError, UserStore, quantize
from .models import UserModel


def to_domain(obj: UserModel) -> User:
    return User(
        id=str(obj.id),
        total_orders=obj.total_orders,
        total_spent=quantize(obj.total_spent),
    )


class DjangoUserStore(UserStore):
    """Repository that reads and increments users using Django ORM."""

    def get(self, user_id: str) -> User:
        """Load a user by id.

        Args:
            user_id: Opaque user identifier (UUID string).

        Returns:
            The domain ``User``.

        Raises:
            UserNotFoundError: When no row matches, including malformed ids.
            StoreError: When the database is unavailable.
        """
        try:
            return to_domain(UserModel.objects.get(pk=user_id))
        except (UserModel.DoesNotExist, ValidationError, ValueError):
            raise UserNotFoundError(user_id) from None
        except DatabaseError as e:
            raise StoreError(f"user lookup failed: {e}") from e

    def record_order(self, user_id: str, amount: Decimal) -> User:
        """Atomically add one order and ``amount`` to the user's totals.

        The increment is evaluated by the database, so the value written
        never depends on an earlier read made by the caller.

        Raises:
            StoreError: When the row is gone or the database fails.
        """
        try:
            updated = UserModel.objects.filter(pk=user_id).update(
                total_orders=F("total_orders") + 1,
                total_spent=F("total_spent") + amount,
            )
            if updated != 1:
                raise StoreError(f"user {user_id} disappeared")
            return to_domain(UserModel.objects.get(pk=user_id))
        except DatabaseError as e:
            raise StoreError(f"user statistics update failed: {e}") from e
