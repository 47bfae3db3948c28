"""Unit tests for the OrderPlacementWorkflow domain orchestration.

These tests drive the workflow with the in-memory stores and small
gateway stubs to check pricing, step ordering, the error taxonomy and the
degraded-success path. No database or network is involved.
"""

from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

import pytest

from apps.orders.adapters import InMemoryOrderStore, InMemoryUserStore, RewardsStub
from apps.orders.domain import (
    LOYALTY_CONFIRMATION_FAILED,
    CartLine,
    EmptyOrder,
    GatewayError,
    GatewayErrorKind,
    OrderPlacementWorkflow,
    OrderRequest,
    OrderStatus,
    PersistenceFailure,
    RewardsUnavailable,
    StoreError,
    User,
    UserNotFound,
    compute_totals,
)

D = Decimal


class FailingRewards(RewardsStub):
    """Rewards stub that raises on one chosen operation."""

    def __init__(self, fail_on, kind=GatewayErrorKind.TRANSIENT_NETWORK, discount=D("0")):
        super().__init__(discount=discount)
        self.fail_on = fail_on
        self.kind = kind

    def sync_profile(self, user_id, attributes=None):
        super().sync_profile(user_id, attributes)
        if self.fail_on == "sync_profile":
            raise GatewayError(self.kind, "boom")

    def evaluate_session(self, user_id, items):
        decision = super().evaluate_session(user_id, items)
        if self.fail_on == "evaluate_session":
            raise GatewayError(self.kind, "boom")
        return decision

    def confirm_loyalty(self, user_id, final_total):
        super().confirm_loyalty(user_id, final_total)
        if self.fail_on == "confirm_loyalty":
            raise GatewayError(self.kind, "boom")


class BrokenOrderStore(InMemoryOrderStore):
    def save(self, order):
        raise StoreError("db down")


class UnreachableUserStore(InMemoryUserStore):
    def get(self, user_id):
        raise StoreError("connection refused")


class SpyUserStore(InMemoryUserStore):
    """User store that counts every read and write."""

    def __init__(self, users=()):
        super().__init__(users)
        self.gets = 0
        self.writes = 0

    def get(self, user_id):
        self.gets += 1
        return super().get(user_id)

    def record_order(self, user_id, amount):
        self.writes += 1
        return super().record_order(user_id, amount)


def _request(user_id="u1", lines=((D("10.00"), 3),)):
    items = tuple(CartLine(sku=f"SKU{i}", name=f"Item {i}", unit_price=p, quantity=q) for i, (p, q) in enumerate(lines))
    return OrderRequest(user_id=user_id, items=items)


def _workflow(rewards=None, users=None, orders=None):
    users = users or InMemoryUserStore([User(id="u1", total_orders=2, total_spent=D("50.00"))])
    orders = orders or InMemoryOrderStore()
    rewards = rewards or RewardsStub(discount=D("5"))
    return OrderPlacementWorkflow(users, orders, rewards), users, orders, rewards


def test_place_order_example_updates_order_and_user():
    """User with 2 orders / 50.0 buys 3 x 10.0 with a 5.0 discount."""
    wf, users, orders, _ = _workflow()
    result = wf.place_order(_request())

    assert result.warning is None
    assert result.order.id is not None
    assert result.order.status == OrderStatus.PLACED
    assert result.order.total_amount == D("25.00")
    assert result.order.discount_applied == D("5.00")
    assert result.order.subtotal == D("30.00")

    user = users.get("u1")
    assert user.total_orders == 3
    assert user.total_spent == D("75.00")
    assert orders.all() == [result.order]


def test_discount_larger_than_subtotal_is_clamped():
    wf, users, _, _ = _workflow(rewards=RewardsStub(discount=D("15")))
    result = wf.place_order(_request(lines=((D("10.00"), 1),)))
    assert result.order.total_amount == D("0.00")
    assert result.order.discount_applied == D("10.00")
    assert users.get("u1").total_spent == D("50.00")
    assert users.get("u1").total_orders == 3


@pytest.mark.parametrize(
    "lines, discount",
    [
        (((D("10.00"), 3),), D("5")),
        (((D("19.99"), 2), (D("0.01"), 7)), D("0")),
        (((D("4.50"), 1),), D("4.50")),
        (((D("4.50"), 1), (D("1.25"), 4)), D("100")),
        (((D("0.00"), 2),), D("3")),
    ],
)
def test_totals_invariant(lines, discount):
    items = [CartLine("SKU", "x", p, q) for p, q in lines]
    subtotal, applied, total = compute_totals(items, discount)
    assert total == max(D("0"), subtotal - applied)
    assert applied <= subtotal
    assert total >= 0


def test_steps_run_in_order_and_confirm_uses_final_total():
    seen = {}

    class RecordingRewards(RewardsStub):
        def confirm_loyalty(self, user_id, final_total):
            seen["total"] = final_total
            super().confirm_loyalty(user_id, final_total)

    rewards = RecordingRewards(discount=D("5"))
    wf, _, _, _ = _workflow(rewards=rewards)
    wf.place_order(_request())

    assert [op for op, _ in rewards.calls] == ["sync_profile", "evaluate_session", "confirm_loyalty"]
    assert seen["total"] == D("25.00")


def test_unknown_user_fails_without_touching_stores():
    users = SpyUserStore()
    orders = InMemoryOrderStore()
    rewards = RewardsStub()
    wf = OrderPlacementWorkflow(users, orders, rewards)

    with pytest.raises(UserNotFound) as e:
        wf.place_order(_request(user_id="missing"))

    assert e.value.code == "USER_NOT_FOUND"
    assert users.writes == 0
    assert orders.all() == []
    assert rewards.calls == []


def test_user_store_outage_is_persistence_failure():
    rewards = RewardsStub()
    orders = InMemoryOrderStore()
    wf = OrderPlacementWorkflow(UnreachableUserStore(), orders, rewards)

    with pytest.raises(PersistenceFailure) as e:
        wf.place_order(_request())

    assert e.value.code == "PERSISTENCE_FAILURE"
    assert orders.all() == []
    assert rewards.calls == []


def test_empty_order_is_rejected():
    wf, _, orders, _ = _workflow()
    with pytest.raises(EmptyOrder):
        wf.place_order(OrderRequest(user_id="u1", items=()))
    assert orders.all() == []


@pytest.mark.parametrize("fail_on", ["sync_profile", "evaluate_session"])
@pytest.mark.parametrize("kind", list(GatewayErrorKind))
def test_rewards_failure_before_persist_leaves_no_state(fail_on, kind):
    wf, users, orders, rewards = _workflow(rewards=FailingRewards(fail_on, kind))

    with pytest.raises(RewardsUnavailable) as e:
        wf.place_order(_request())

    assert e.value.code == "REWARDS_UNAVAILABLE"
    assert e.value.kind == kind
    assert orders.all() == []
    assert users.get("u1") == User(id="u1", total_orders=2, total_spent=D("50.00"))
    assert ("confirm_loyalty", "u1") not in rewards.calls


def test_evaluate_is_never_called_when_sync_fails():
    rewards = FailingRewards("sync_profile")
    wf, _, _, _ = _workflow(rewards=rewards)
    with pytest.raises(RewardsUnavailable):
        wf.place_order(_request())
    assert [op for op, _ in rewards.calls] == ["sync_profile"]


def test_persistence_failure_skips_stats_and_confirmation():
    users = SpyUserStore([User(id="u1", total_orders=2, total_spent=D("50.00"))])
    rewards = RewardsStub(discount=D("5"))
    wf = OrderPlacementWorkflow(users, BrokenOrderStore(), rewards)

    with pytest.raises(PersistenceFailure) as e:
        wf.place_order(_request())

    assert e.value.code == "PERSISTENCE_FAILURE"
    assert users.writes == 0
    assert users.get("u1").total_orders == 2
    assert [op for op, _ in rewards.calls] == ["sync_profile", "evaluate_session"]


def test_stats_failure_is_persistence_failure_inside_atomic_block():
    entered = []

    class Atomic:
        def __enter__(self):
            entered.append("enter")

        def __exit__(self, exc_type, exc, tb):
            entered.append("rollback" if exc_type else "commit")
            return False

    class BrokenUsers(InMemoryUserStore):
        def record_order(self, user_id, amount):
            raise StoreError("row gone")

    users = BrokenUsers([User(id="u1")])
    wf = OrderPlacementWorkflow(users, InMemoryOrderStore(), RewardsStub(), atomic=Atomic)

    with pytest.raises(PersistenceFailure):
        wf.place_order(_request())
    assert entered == ["enter", "rollback"]


def test_confirm_failure_is_degraded_success_and_not_rolled_back():
    wf, users, orders, _ = _workflow(rewards=FailingRewards("confirm_loyalty", discount=D("5")))

    result = wf.place_order(_request())

    assert result.degraded
    assert result.warning == LOYALTY_CONFIRMATION_FAILED
    assert orders.all() == [result.order]
    assert users.get("u1").total_orders == 3
    assert users.get("u1").total_spent == D("75.00")

    # Re-submitting is a new placement, not a replay
    again = wf.place_order(_request())
    assert again.order.id != result.order.id
    assert len(orders.all()) == 2
    assert users.get("u1").total_orders == 4
    assert users.get("u1").total_spent == D("100.00")


def test_evaluate_cart_has_no_side_effects():
    wf, users, orders, rewards = _workflow()
    decision = wf.evaluate_cart(_request())
    assert decision.discount_amount == D("5")
    assert orders.all() == []
    assert users.get("u1").total_orders == 2
    assert [op for op, _ in rewards.calls] == ["sync_profile", "evaluate_session"]


def test_concurrent_placements_for_same_user_lose_no_update():
    n = 50
    users = InMemoryUserStore([User(id="u1")])
    orders = InMemoryOrderStore()
    wf = OrderPlacementWorkflow(users, orders, RewardsStub(discount=D("1")))
    carts = [_request(lines=((D("3.25"), (i % 4) + 1),)) for i in range(n)]

    with ThreadPoolExecutor(max_workers=16) as pool:
        results = list(pool.map(wf.place_order, carts))

    user = users.get("u1")
    assert user.total_orders == n
    assert user.total_spent == sum((r.order.total_amount for r in results), D("0"))
    assert len({r.order.id for r in results}) == n
