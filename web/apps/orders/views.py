"""HTTP views for the orders app.

This module contains DRF API views used by the orders service. Views are
kept intentionally small: they validate requests (via Pydantic), map to
domain DTOs, delegate to the placement workflow, and map domain outcomes
to HTTP responses.

The views obtain a configured ``OrderPlacementWorkflow`` from
``providers.get_order_workflow()``, which wires the Django stores with
either the HTTP rewards adapter (``HttpRewardsGateway``) or the in-process
``RewardsStub`` depending on runtime settings.

Error mapping for placement and preview:

- 400 with validation details when the payload is invalid.
- 404 ``USER_NOT_FOUND`` when the user does not exist.
- 503 ``REWARDS_UNAVAILABLE`` when the rewards provider failed before
  anything was written. Safe to retry.
- 500 ``PERSISTENCE_FAILURE`` when the order could not be stored.

A failed loyalty confirmation is not an error: the order is real, so the
response is still 201, with ``warning`` set in the body and the
``X-Order-Warning`` header.
"""
import logging

from pydantic import ValidationError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from . import providers
from .domain import (
    CartLine,
    EmptyOrder,
    Order,
    OrderRequest,
    PersistenceFailure,
    PlacementError,
    RewardsUnavailable,
    UserNotFound,
)
from .repository import DjangoOrderStore
from .schemas import CartLineOut, OrderReadDTO, PlaceOrderDTO, RewardsDecisionDTO

logger = logging.getLogger("orders")

ERROR_STATUS = {
    EmptyOrder: status.HTTP_400_BAD_REQUEST,
    UserNotFound: status.HTTP_404_NOT_FOUND,
    RewardsUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
    PersistenceFailure: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def _error_response(e: PlacementError) -> Response:
    status_code = ERROR_STATUS.get(type(e), status.HTTP_500_INTERNAL_SERVER_ERROR)
    return Response({"detail": e.code}, status=status_code)


def _parse_request(data) -> OrderRequest:
    """Validate the payload and build the domain ``OrderRequest``.

    Raises:
        pydantic.ValidationError: When the payload is invalid.
    """
    dto = PlaceOrderDTO.model_validate(data)
    items = tuple(
        CartLine(sku=i.sku, name=i.name, unit_price=i.price, quantity=i.quantity) for i in dto.items
    )
    return OrderRequest(user_id=str(dto.user_id), items=items)


def render_order(order: Order, warning: str | None = None) -> dict:
    dto = OrderReadDTO(
        id=order.id,
        user_id=order.user_id,
        items=[
            CartLineOut(sku=i.sku, name=i.name, price=i.unit_price, quantity=i.quantity) for i in order.items
        ],
        subtotal=order.subtotal,
        total_amount=order.total_amount,
        discount_applied=order.discount_applied,
        status=order.status.value,
        created_at=order.created_at,
        warning=warning,
    )
    return dto.model_dump(mode="json", exclude_none=True)


class OrdersPingView(APIView):
    """Simple health-check endpoint for the orders module."""

    def get(self, request):
        return Response({"ok": True})


class OrdersCollectionView(APIView):
    """Place an order by running the placement workflow.

    The view validates the payload using a Pydantic DTO, runs the workflow
    and returns the created resource with a ``Location`` header.
    """
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_create"

    def post(self, request):
        """Place a new order.

        Returns:
            Response: 201 with the order on success or degraded success,
            otherwise one of the error responses listed in the module
            docstring.
        """
        try:
            order_request = _parse_request(request.data)
        except ValidationError as e:
            logger.info("invalid order payload", extra={"error_count": e.error_count()})
            return Response({"detail": e.errors(include_url=False, include_context=False)}, status=status.HTTP_400_BAD_REQUEST)

        workflow = providers.get_order_workflow()
        try:
            result = workflow.place_order(order_request)
        except PlacementError as e:
            return _error_response(e)

        body = render_order(result.order, result.warning)
        resp = Response(body, status=status.HTTP_201_CREATED)
        resp["Location"] = f"/api/orders/{result.order.id}/"
        if result.degraded:
            resp["X-Order-Warning"] = result.warning
        return resp


class RetrieveOrderView(APIView):
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_detail"

    def get(self, request, oid):
        order = DjangoOrderStore().get(str(oid))
        if order is None:
            return Response({"detail": "NOT_FOUND"}, status=status.HTTP_404_NOT_FOUND)
        return Response(render_order(order), status=200)


class RewardsEvaluateView(APIView):
    """Preview the rewards decision for a cart without placing an order."""
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "rewards_evaluate"

    def post(self, request):
        try:
            order_request = _parse_request(request.data)
        except ValidationError as e:
            return Response({"detail": e.errors(include_url=False, include_context=False)}, status=status.HTTP_400_BAD_REQUEST)

        try:
            decision = providers.get_order_workflow().evaluate_cart(order_request)
        except PlacementError as e:
            return _error_response(e)

        dto = RewardsDecisionDTO(
            discount_amount=decision.discount_amount,
            applied_rewards=decision.applied_rewards,
            loyalty_points_used=decision.loyalty_points_used,
            loyalty_points_earned=decision.loyalty_points_earned,
            message=decision.message,
        )
        return Response(dto.model_dump(mode="json"), status=200)
