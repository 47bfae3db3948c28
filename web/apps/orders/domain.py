"""Domain models, ports and the order placement workflow.

This module contains the dataclasses used as DTOs for users, cart lines,
orders and rewards decisions, the protocol definitions (ports) for the
stores and the external rewards provider, and the workflow that turns an
order request into a persisted order and updated user statistics.

The workflow does not know about Django, HTTP or settings. Everything it
talks to is injected through the ports below.
"""

import logging
from contextlib import nullcontext
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Callable, ContextManager, List, Mapping, Optional, Protocol, Sequence

logger = logging.getLogger("orders")

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")

LOYALTY_CONFIRMATION_FAILED = "LOYALTY_CONFIRMATION_FAILED"


def quantize(amount: Decimal) -> Decimal:
    """Round a money amount to cents (half-up)."""
    return Decimal(amount).quantize(CENTS, rounding=ROUND_HALF_UP)


# ---- Enums ----
class OrderStatus(str, Enum):
    """Possible order statuses. The workflow only ever produces PLACED."""

    PLACED = "PLACED"
    CANCELLED = "CANCELLED"


class GatewayErrorKind(str, Enum):
    """Classification of a rewards provider failure."""

    TRANSIENT_NETWORK = "transient-network"
    PROVIDER_REJECTED = "provider-rejected"
    UNEXPECTED = "unexpected"


# ---- Entities / DTOs ----
@dataclass(frozen=True)
class CartLine:
    """A single line of a cart or order.

    Attributes:
        sku: The stock-keeping unit identifier for the product.
        name: Display name of the product.
        unit_price: Price of one unit, non-negative.
        quantity: Number of units requested, positive.

    Frozen because a line is copied into the order at placement time and
    must not change afterwards.
    """

    sku: str
    name: str
    unit_price: Decimal
    quantity: int

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class OrderRequest:
    """Transient input of a placement: who is ordering and what."""

    user_id: str
    items: Sequence[CartLine]


@dataclass(frozen=True)
class User:
    """Per-user aggregate statistics.

    Attributes:
        id: Opaque user identifier.
        total_orders: Number of orders attributed to the user.
        total_spent: Sum of ``total_amount`` over those orders.
    """

    id: str
    total_orders: int = 0
    total_spent: Decimal = ZERO


@dataclass(frozen=True)
class RewardsDecision:
    """Discount and loyalty decision returned by the rewards provider."""

    discount_amount: Decimal = ZERO
    applied_rewards: List[str] = field(default_factory=list)
    loyalty_points_used: int = 0
    loyalty_points_earned: int = 0
    message: Optional[str] = None


@dataclass(frozen=True)
class Order:
    """Durable result of a successful placement.

    Attributes:
        id: Persistent identifier, or None until the order store assigns one.
        user_id: Owner of the order.
        items: Cart lines frozen at placement time.
        total_amount: Final charge after discount, never negative.
        discount_applied: Discount actually used, never above the subtotal.
        status: OrderStatus of the order.
        created_at: Set by the order store on persistence.
    """

    id: Optional[str]
    user_id: str
    items: tuple
    total_amount: Decimal
    discount_applied: Decimal
    status: OrderStatus = OrderStatus.PLACED
    created_at: Optional[datetime] = None

    @property
    def subtotal(self) -> Decimal:
        return quantize(sum((line.line_total for line in self.items), ZERO))


@dataclass(frozen=True)
class PlacementResult:
    """Outcome of ``place_order``.

    ``warning`` is set when the order was committed but a secondary step
    (loyalty confirmation) failed. Callers must treat such a result as a
    success and never re-submit the cart.
    """

    order: Order
    decision: RewardsDecision
    warning: Optional[str] = None

    @property
    def degraded(self) -> bool:
        return self.warning is not None


# ---- Errors ----
class GatewayError(Exception):
    """Failure of a rewards provider call."""

    def __init__(self, kind: GatewayErrorKind, message: Optional[str] = None):
        super().__init__(message or kind.value)
        self.kind = kind
        self.message = message


class StoreError(Exception):
    """A store could not complete a read or write."""


class UserNotFoundError(StoreError):
    """The user store has no record for the requested id."""


class PlacementError(Exception):
    """Base class for errors surfaced by the workflow.

    ``code`` is a short stable identifier that the API layer maps to an
    HTTP status.
    """

    code = "PLACEMENT_ERROR"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.code)


class EmptyOrder(PlacementError):
    code = "EMPTY_ORDER"


class UserNotFound(PlacementError):
    code = "USER_NOT_FOUND"


class RewardsUnavailable(PlacementError):
    """The provider failed before anything was written. Safe to retry."""

    code = "REWARDS_UNAVAILABLE"

    def __init__(self, message: Optional[str] = None, kind: Optional[GatewayErrorKind] = None):
        super().__init__(message)
        self.kind = kind


class PersistenceFailure(PlacementError):
    """The user store could not be read, or the order or statistics write
    failed. Not blindly retryable."""

    code = "PERSISTENCE_FAILURE"


# ---- Ports (DIP) ----
class RewardsGateway(Protocol):
    """Port describing the three rewards provider operations.

    Every method is a blocking call that raises ``GatewayError`` on
    failure. Implementations never retry.
    """

    def sync_profile(self, user_id: str, attributes: Optional[Mapping] = None) -> None:
        """Inform the provider about the user before evaluating a cart."""
        raise NotImplementedError()

    def evaluate_session(self, user_id: str, items: Sequence[CartLine]) -> RewardsDecision:
        """Return the provider's discount decision for exactly ``items``."""
        raise NotImplementedError()

    def confirm_loyalty(self, user_id: str, final_total: Decimal) -> None:
        """Confirm that the loyalty points of the evaluation were consumed."""
        raise NotImplementedError()


class UserStore(Protocol):
    """Port for the per-user statistics record."""

    def get(self, user_id: str) -> User:
        """Return the user or raise ``UserNotFoundError``."""
        raise NotImplementedError()

    def record_order(self, user_id: str, amount: Decimal) -> User:
        """Atomically add one order and ``amount`` spend to the user.

        Must be a single increment at the store, never an overwrite of a
        previously read snapshot. Raises ``StoreError`` on failure.
        """
        raise NotImplementedError()


class OrderStore(Protocol):
    """Port for order persistence."""

    def save(self, order: Order) -> Order:
        """Persist a new order and return it with its id assigned."""
        raise NotImplementedError()

    def get(self, order_id: str) -> Optional[Order]:
        raise NotImplementedError()


# ---- Pricing ----
def compute_totals(items: Sequence[CartLine], discount: Decimal) -> tuple[Decimal, Decimal, Decimal]:
    """Return ``(subtotal, discount_applied, total_amount)`` for a cart.

    The discount is clamped to the subtotal so the total never goes
    negative.
    """
    subtotal = quantize(sum((line.line_total for line in items), ZERO))
    discount = quantize(max(Decimal(discount), ZERO))
    applied = min(discount, subtotal)
    total = quantize(max(ZERO, subtotal - discount))
    return subtotal, applied, total


# ---- Workflow ----
class OrderPlacementWorkflow:
    """Domain service responsible for placing orders.

    It resolves the user, asks the rewards provider for a decision, prices
    the cart, persists the order, updates the user's statistics and
    finally confirms loyalty usage with the provider. The steps always run
    in this order and are never retried here.

    ``atomic`` is a zero-argument factory returning a context manager that
    wraps the order write and the statistics increment, so that both are
    committed or neither is. Django wiring passes ``transaction.atomic``.
    """

    def __init__(
        self,
        users: UserStore,
        orders: OrderStore,
        rewards: RewardsGateway,
        atomic: Callable[[], ContextManager] = nullcontext,
    ):
        self.users = users
        self.orders = orders
        self.rewards = rewards
        self.atomic = atomic

    def evaluate_cart(self, request: OrderRequest) -> RewardsDecision:
        """Run the user lookup and the rewards evaluation without placing.

        Raises:
            EmptyOrder: If the request has no items.
            UserNotFound: If the user does not exist.
            RewardsUnavailable: If the provider failed.
        """
        _, decision = self._evaluate(request)
        return decision

    def place_order(self, request: OrderRequest) -> PlacementResult:
        """Place an order for ``request``.

        Returns:
            PlacementResult holding the persisted order. ``warning`` is
            LOYALTY_CONFIRMATION_FAILED when the final provider call failed
            after the order had been committed.

        Raises:
            EmptyOrder: If the request has no items.
            UserNotFound: If the user does not exist; nothing was touched.
            RewardsUnavailable: If profile sync or evaluation failed; no
                durable write happened.
            PersistenceFailure: If the order or the statistics write failed.
        """
        user, decision = self._evaluate(request)

        subtotal, discount, total = compute_totals(request.items, decision.discount_amount)
        order = Order(
            id=None,
            user_id=user.id,
            items=tuple(request.items),
            total_amount=total,
            discount_applied=discount,
            status=OrderStatus.PLACED,
        )

        try:
            with self.atomic():
                saved = self.orders.save(order)
                self.users.record_order(user.id, total)
        except StoreError as e:
            logger.error(
                "order persistence failed",
                extra={"user_id": user.id, "error": str(e)},
            )
            raise PersistenceFailure(str(e)) from e

        logger.info(
            "order placed",
            extra={
                "order_id": saved.id,
                "user_id": user.id,
                "subtotal": str(subtotal),
                "discount_applied": str(discount),
                "total_amount": str(total),
            },
        )

        # The order is committed: from here on nothing may undo it.
        try:
            self.rewards.confirm_loyalty(user.id, total)
        except GatewayError as e:
            logger.warning(
                "loyalty confirmation failed",
                extra={"order_id": saved.id, "user_id": user.id, "kind": e.kind.value, "error": str(e)},
            )
            return PlacementResult(order=saved, decision=decision, warning=LOYALTY_CONFIRMATION_FAILED)

        return PlacementResult(order=saved, decision=decision)

    def _evaluate(self, request: OrderRequest) -> tuple[User, RewardsDecision]:
        if not request.items:
            raise EmptyOrder()

        # 1) Resolve user
        try:
            user = self.users.get(request.user_id)
        except UserNotFoundError as e:
            raise UserNotFound(f"user {request.user_id} not found") from e
        except StoreError as e:
            logger.error("user lookup failed", extra={"user_id": request.user_id, "error": str(e)})
            raise PersistenceFailure(str(e)) from e

        # 2) Evaluate rewards
        try:
            self.rewards.sync_profile(
                user.id,
                {"totalOrders": user.total_orders, "totalSpent": user.total_spent},
            )
            decision = self.rewards.evaluate_session(user.id, list(request.items))
        except GatewayError as e:
            logger.warning(
                "rewards evaluation failed",
                extra={"user_id": user.id, "kind": e.kind.value, "error": str(e)},
            )
            raise RewardsUnavailable(str(e), kind=e.kind) from e

        logger.info(
            "rewards evaluated",
            extra={
                "user_id": user.id,
                "discount_amount": str(decision.discount_amount),
                "applied_rewards": decision.applied_rewards,
            },
        )
        return user, decision


def with_id(order: Order, order_id: str, created_at: Optional[datetime] = None) -> Order:
    """Return a copy of ``order`` carrying its store-assigned identity."""
    return replace(order, id=order_id, created_at=created_at)
