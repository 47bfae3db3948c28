from django.urls import path
from .views import OrdersPingView, OrdersCollectionView, RetrieveOrderView, RewardsEvaluateView

app_name = "orders"

urlpatterns = [
    path("orders/ping/", OrdersPingView.as_view(), name="ping"),
    path("orders/", OrdersCollectionView.as_view(), name="orders-collection"),  # POST place
    path("orders/<uuid:oid>/", RetrieveOrderView.as_view(), name="orders-detail"),
    path("rewards/evaluate/", RewardsEvaluateView.as_view(), name="rewards-evaluate"),
]
