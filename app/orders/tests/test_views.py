"""
API tests for the orders and bookings endpoints.
"""

from __future__ import annotations

import pytest
from django.core.cache import cache
from django.urls import reverse

from lifecycle import BookingStatus, OrderStatus
from orders.models import Order
from orders.tests.factories import OrderFactory

ORDERS_URL = reverse("orders:order-list")
BOOKINGS_URL = reverse("orders:booking-list")


@pytest.fixture(autouse=True)
def clear_rate_limits():
    cache.clear()
    yield
    cache.clear()


def order_action(order, name: str) -> str:
    return reverse(f"orders:order-{name}", args=[order.id])


# =============================================================================
# Orders
# =============================================================================


@pytest.mark.django_db
class TestOrderCreate:
    def test_client_creates_order(self, api_client, client_user, pro_profile):
        api_client.force_authenticate(client_user)

        response = api_client.post(
            ORDERS_URL,
            {"pro_profile_id": pro_profile.id, "category_id": "plumbing", "estimated_hours": "2"},
            format="json",
        )

        assert response.status_code == 201
        assert response.data["status"] == OrderStatus.DRAFT
        assert response.data["estimated_amount"] == 10000
        assert response.data["pro"]["id"] == pro_profile.id

    def test_hourly_order_without_hours(self, api_client, client_user, pro_profile):
        api_client.force_authenticate(client_user)

        response = api_client.post(
            ORDERS_URL, {"pro_profile_id": pro_profile.id, "category_id": "plumbing"}, format="json"
        )

        assert response.status_code == 400
        assert "estimated_hours" in response.data

    def test_pro_cannot_create(self, api_client, pro_user, pro_profile):
        api_client.force_authenticate(pro_user)

        response = api_client.post(
            ORDERS_URL,
            {"pro_profile_id": pro_profile.id, "category_id": "plumbing", "estimated_hours": "1"},
            format="json",
        )

        assert response.status_code == 403

    def test_creation_is_rate_limited(self, api_client, client_user, pro_profile, settings):
        settings.ORDER_CREATE_RATE_LIMIT = 2
        api_client.force_authenticate(client_user)
        body = {"pro_profile_id": pro_profile.id, "category_id": "plumbing", "estimated_hours": "1"}

        responses = [api_client.post(ORDERS_URL, body, format="json") for _ in range(3)]

        assert [response.status_code for response in responses] == [201, 201, 429]
        assert responses[-1].data["error_code"] == "RATE_LIMIT_EXCEEDED"
        assert int(responses[-1]["Retry-After"]) > 0
        assert Order.objects.count() == 2


@pytest.mark.django_db
class TestOrderList:
    def test_parties_see_their_orders(self, api_client, client_user, pro_user, pro_profile):
        mine = OrderFactory(client=client_user, pro_profile=pro_profile)
        OrderFactory()

        api_client.force_authenticate(client_user)
        as_client = api_client.get(ORDERS_URL)
        api_client.force_authenticate(pro_user)
        as_pro = api_client.get(ORDERS_URL)

        assert [row["id"] for row in as_client.data["results"]] == [str(mine.id)]
        assert [row["id"] for row in as_pro.data["results"]] == [str(mine.id)]

    def test_status_filter(self, api_client, client_user, pro_profile):
        OrderFactory(client=client_user, pro_profile=pro_profile)
        accepted = OrderFactory(client=client_user, pro_profile=pro_profile, status=OrderStatus.ACCEPTED)
        api_client.force_authenticate(client_user)

        response = api_client.get(ORDERS_URL, {"status": OrderStatus.ACCEPTED})

        assert [row["id"] for row in response.data["results"]] == [str(accepted.id)]

    def test_other_clients_order_is_hidden(self, api_client, client_user):
        order = OrderFactory()
        api_client.force_authenticate(client_user)

        assert api_client.get(reverse("orders:order-detail", args=[order.id])).status_code == 404

    def test_requires_authentication(self, api_client):
        assert api_client.get(ORDERS_URL).status_code == 401


@pytest.mark.django_db
class TestOrderActions:
    def test_submit_then_accept(self, api_client, client_user, pro_user, pro_profile):
        order = OrderFactory(client=client_user, pro_profile=pro_profile)

        api_client.force_authenticate(client_user)
        submitted = api_client.post(order_action(order, "submit"))
        api_client.force_authenticate(pro_user)
        accepted = api_client.post(order_action(order, "accept"), {}, format="json")

        assert submitted.data["status"] == OrderStatus.PENDING_PRO_CONFIRMATION
        assert accepted.status_code == 200
        assert accepted.data["status"] == OrderStatus.ACCEPTED

    def test_illegal_move_is_conflict(self, api_client, client_user, pro_profile):
        order = OrderFactory(client=client_user, pro_profile=pro_profile, status=OrderStatus.PENDING_PRO_CONFIRMATION)
        api_client.force_authenticate(client_user)

        response = api_client.post(order_action(order, "accept"), {}, format="json")

        assert response.status_code == 409
        assert response.data["error_code"] == "ILLEGAL_TRANSITION"

    def test_complete_with_hours(self, api_client, pro_user, pro_profile):
        order = OrderFactory(pro_profile=pro_profile, status=OrderStatus.IN_PROGRESS)
        api_client.force_authenticate(pro_user)

        response = api_client.post(order_action(order, "complete"), {"final_hours": "1.50"}, format="json")

        assert response.status_code == 200
        assert response.data["status"] == OrderStatus.AWAITING_CLIENT_APPROVAL
        assert response.data["final_hours"] == "1.50"

    def test_dispute_needs_reason(self, api_client, client_user, pro_profile):
        order = OrderFactory(
            client=client_user, pro_profile=pro_profile, status=OrderStatus.AWAITING_CLIENT_APPROVAL
        )
        api_client.force_authenticate(client_user)

        response = api_client.post(order_action(order, "dispute"), {}, format="json")

        assert response.status_code == 400

    def test_admin_resolves_dispute_for_client(self, api_client, admin_user, queued):
        order = OrderFactory(status=OrderStatus.DISPUTED)
        api_client.force_authenticate(admin_user)

        response = api_client.post(order_action(order, "resolve"), {"outcome": "cancel"}, format="json")

        assert response.status_code == 200
        assert response.data["status"] == OrderStatus.CANCELED

    def test_client_cannot_resolve(self, api_client, client_user, pro_profile):
        order = OrderFactory(client=client_user, pro_profile=pro_profile, status=OrderStatus.DISPUTED)
        api_client.force_authenticate(client_user)

        response = api_client.post(order_action(order, "resolve"), {"outcome": "complete"}, format="json")

        assert response.status_code == 403
        assert response.data["error_code"] == "ROLE_NOT_ALLOWED"

    def test_arrive_keeps_status(self, api_client, pro_user, pro_profile):
        order = OrderFactory(pro_profile=pro_profile, status=OrderStatus.CONFIRMED)
        api_client.force_authenticate(pro_user)

        response = api_client.post(order_action(order, "arrive"))

        assert response.data["status"] == OrderStatus.CONFIRMED
        assert response.data["arrived_at"] is not None

    def test_cancel(self, api_client, client_user, pro_profile, queued):
        order = OrderFactory(client=client_user, pro_profile=pro_profile, status=OrderStatus.ACCEPTED)
        api_client.force_authenticate(client_user)

        response = api_client.post(order_action(order, "cancel"), {"reason": "found someone"}, format="json")

        assert response.data["status"] == OrderStatus.CANCELED
        assert response.data["cancel_reason"] == "found someone"
        assert response.data["canceled_by_role"] == "client"


# =============================================================================
# Bookings
# =============================================================================


@pytest.mark.django_db
class TestBookings:
    def test_client_creates_booking(self, api_client, client_user, pro_profile):
        api_client.force_authenticate(client_user)

        response = api_client.post(
            BOOKINGS_URL, {"pro_profile_id": pro_profile.id, "estimated_amount": 4000}, format="json"
        )

        assert response.status_code == 201
        assert response.data["status"] == BookingStatus.PENDING_PAYMENT

    def test_pro_moves_booking(self, api_client, pro_user, make_booking):
        booking = make_booking(BookingStatus.ACCEPTED)
        api_client.force_authenticate(pro_user)

        response = api_client.post(reverse("orders:booking-on-my-way", args=[booking.id]))

        assert response.status_code == 200
        assert response.data["status"] == BookingStatus.ON_MY_WAY

    def test_client_cannot_arrive(self, api_client, client_user, make_booking):
        booking = make_booking(BookingStatus.ON_MY_WAY)
        api_client.force_authenticate(client_user)

        response = api_client.post(reverse("orders:booking-arrive", args=[booking.id]))

        assert response.status_code == 409
