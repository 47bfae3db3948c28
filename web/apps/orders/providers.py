"""Service provider helpers for wiring the placement workflow with ports.

This module exposes a small factory, ``get_order_workflow``, that returns
an ``OrderPlacementWorkflow`` backed by the Django stores. The rewards
port is the HTTP adapter when ``settings.USE_HTTP_ADAPTERS`` is truthy, and
the in-process ``RewardsStub`` otherwise (tests and local development).

Settings are read here, once per call, and frozen into ``RewardsConfig``;
the workflow itself never touches ``django.conf.settings``.
"""

from decimal import Decimal

from django.conf import settings
from django.db import transaction

from apps.users.repository import DjangoUserStore
from .adapters import RewardsStub
from .domain import OrderPlacementWorkflow, RewardsGateway
from .http_adapters import HttpRewardsGateway, RewardsConfig
from .repository import DjangoOrderStore


def get_rewards_config() -> RewardsConfig:
    """Build the immutable rewards provider configuration from settings."""
    return RewardsConfig(
        base_url=settings.REWARDS_BASE_URL,
        api_key=settings.REWARDS_API_KEY,
        timeout=settings.REWARDS_TIMEOUT_SECS,
        circuit_fail_threshold=getattr(settings, "REWARDS_CIRCUIT_FAIL_THRESHOLD", 5),
        circuit_reset_timeout=getattr(settings, "REWARDS_CIRCUIT_RESET_TIMEOUT", 30.0),
    )


def get_rewards_gateway() -> RewardsGateway:
    """Return the rewards port selected by ``USE_HTTP_ADAPTERS``."""
    if getattr(settings, "USE_HTTP_ADAPTERS", True):
        return HttpRewardsGateway(get_rewards_config())
    return RewardsStub(discount=Decimal(str(getattr(settings, "REWARDS_STUB_DISCOUNT", "0"))))


def get_order_workflow() -> OrderPlacementWorkflow:
    """Return a configured OrderPlacementWorkflow instance.

    The order write and the statistics increment share one database
    transaction through ``transaction.atomic``.

    Returns:
        OrderPlacementWorkflow: A workflow instance with appropriate ports.
    """
    return OrderPlacementWorkflow(
        users=DjangoUserStore(),
        orders=DjangoOrderStore(),
        rewards=get_rewards_gateway(),
        atomic=transaction.atomic,
    )
