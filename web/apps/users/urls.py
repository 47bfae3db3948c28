from django.urls import path
from .views import RetrieveUserView

app_name = "users"

urlpatterns = [
    path("users/<uuid:uid>/", RetrieveUserView.as_view(), name="users-detail"),
]
