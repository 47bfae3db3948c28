import pytest

from apps.orders.http_adapters import _rewards_cb


@pytest.fixture(autouse=True)
def use_stubs_for_tests(settings):
    settings.USE_HTTP_ADAPTERS = False
    settings.REWARDS_STUB_DISCOUNT = "0"


@pytest.fixture(autouse=True)
def reset_rewards_circuit():
    # The breaker is process-wide; never carry state between tests
    _rewards_cb.on_success()
    yield
    _rewards_cb.on_success()


@pytest.fixture
def make_user(db):
    from apps.users.models import UserModel

    def _make(total_orders=0, total_spent="0.00"):
        return UserModel.objects.create(total_orders=total_orders, total_spent=total_spent)

    return _make
