"""Read-only view over per-user order statistics."""
from rest_framework import status
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from apps.orders.domain import UserNotFoundError
from apps.orders.schemas import UserReadDTO
from .repository import DjangoUserStore


class RetrieveUserView(APIView):
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "users_detail"

    def get(self, request, uid):
        try:
            user = DjangoUserStore().get(str(uid))
        except UserNotFoundError:
            return Response({"detail": "NOT_FOUND"}, status=status.HTTP_404_NOT_FOUND)

        dto = UserReadDTO(id=user.id, total_orders=user.total_orders, total_spent=user.total_spent)
        return Response(dto.model_dump(mode="json"), status=200)
