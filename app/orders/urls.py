"""
URL configuration for the orders app.

Routes:
    - /orders/ - OrderViewSet (list, create, detail, lifecycle actions)
    - /bookings/ - BookingViewSet (list, create, detail, lifecycle actions)

Included at /api/v1/ by config/urls.py.
"""

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from orders.views import BookingViewSet, OrderViewSet

app_name = "orders"

router = DefaultRouter()
router.register("orders", OrderViewSet, basename="order")
router.register("bookings", BookingViewSet, basename="booking")

urlpatterns = [
    path("", include(router.urls)),
]
