"""In-process adapters for the orders domain ports.

These adapters implement ``RewardsGateway``, ``UserStore`` and
``OrderStore`` without any network or database access. They are intended
for unit tests and local development where deterministic behavior is
useful and the rewards provider is not reachable.
"""

import threading
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Mapping, Optional, Sequence

from .domain import (
    CartLine,
    Order,
    OrderStore,
    RewardsDecision,
    RewardsGateway,
    StoreError,
    User,
    UserNotFoundError,
    UserStore,
    ZERO,
    quantize,
    with_id,
)


class RewardsStub(RewardsGateway):
    """Stub implementation of ``RewardsGateway``.

    Grants a flat ``discount`` on every evaluation and records each call
    in ``calls`` as ``(operation, user_id)`` tuples, in call order.
    """

    def __init__(self, discount: Decimal = ZERO):
        self.discount = Decimal(discount)
        self.calls: List[tuple] = []
        self._lock = threading.Lock()

    def _record(self, op: str, user_id: str):
        with self._lock:
            self.calls.append((op, user_id))

    def sync_profile(self, user_id: str, attributes: Optional[Mapping] = None) -> None:
        self._record("sync_profile", user_id)

    def evaluate_session(self, user_id: str, items: Sequence[CartLine]) -> RewardsDecision:
        self._record("evaluate_session", user_id)
        applied = ["FLAT_DISCOUNT"] if self.discount > 0 else []
        return RewardsDecision(discount_amount=self.discount, applied_rewards=applied)

    def confirm_loyalty(self, user_id: str, final_total: Decimal) -> None:
        self._record("confirm_loyalty", user_id)


class InMemoryUserStore(UserStore):
    """Dictionary-backed ``UserStore``.

    ``record_order`` holds a lock for the read-increment-write so that
    concurrent placements for the same user never lose an update.
    """

    def __init__(self, users: Sequence[User] = ()):
        self._users: Dict[str, User] = {u.id: u for u in users}
        self._lock = threading.Lock()

    def add(self, user: User) -> User:
        with self._lock:
            self._users[user.id] = user
        return user

    def get(self, user_id: str) -> User:
        try:
            return self._users[user_id]
        except KeyError:
            raise UserNotFoundError(user_id) from None

    def record_order(self, user_id: str, amount: Decimal) -> User:
        with self._lock:
            current = self._users.get(user_id)
            if current is None:
                raise StoreError(f"user {user_id} disappeared")
            updated = replace(
                current,
                total_orders=current.total_orders + 1,
                total_spent=quantize(current.total_spent + amount),
            )
            self._users[user_id] = updated
            return updated


class InMemoryOrderStore(OrderStore):
    """Dictionary-backed ``OrderStore`` assigning UUID identifiers."""

    def __init__(self):
        self._orders: Dict[str, Order] = {}
        self._lock = threading.Lock()

    def save(self, order: Order) -> Order:
        saved = with_id(order, str(uuid.uuid4()), datetime.now(timezone.utc))
        with self._lock:
            self._orders[saved.id] = saved
        return saved

    def get(self, order_id: str) -> Optional[Order]:
        return self._orders.get(order_id)

    def all(self) -> List[Order]:
        with self._lock:
            return list(self._orders.values())
