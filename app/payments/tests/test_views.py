"""
API tests for the payments endpoints.
"""

from __future__ import annotations

import pytest
from django.urls import reverse

from authentication.tests.factories import ProProfileFactory, UserFactory
from lifecycle import EarningStatus, PaymentStatus, PayoutStatus
from payments.models import Payout, ProPayoutProfile
from payments.providers import ProviderPaymentStatus
from payments.services import PayoutService
from payments.tests.factories import EarningFactory, PaymentFactory, ProPayoutProfileFactory

CHECKOUT_URL = reverse("payments:checkout")


# =============================================================================
# Checkout
# =============================================================================


@pytest.mark.django_db
class TestCheckoutView:
    def test_client_starts_checkout(self, api_client, client_user, accepted_order, fake_provider):
        api_client.force_authenticate(client_user)

        response = api_client.post(CHECKOUT_URL, {"order_id": str(accepted_order.id)}, format="json")

        assert response.status_code == 201
        assert response.data["checkout_url"] == "https://checkout.example.com/pref_test"
        assert response.data["payment"]["status"] == PaymentStatus.REQUIRES_ACTION
        assert response.data["payment"]["amount_estimated"] == 10000

    def test_other_clients_order_is_not_found(self, api_client, accepted_order, fake_provider):
        api_client.force_authenticate(UserFactory())

        response = api_client.post(CHECKOUT_URL, {"order_id": str(accepted_order.id)}, format="json")

        assert response.status_code == 404
        fake_provider.create_payment_intent.assert_not_called()

    def test_pro_cannot_check_out(self, api_client, pro_user, accepted_order):
        api_client.force_authenticate(pro_user)

        response = api_client.post(CHECKOUT_URL, {"order_id": str(accepted_order.id)}, format="json")

        assert response.status_code == 403

    def test_requires_exactly_one_subject(self, api_client, client_user):
        api_client.force_authenticate(client_user)

        response = api_client.post(CHECKOUT_URL, {}, format="json")

        assert response.status_code == 400

    def test_secured_payment_conflicts(self, api_client, client_user, authorized_payment):
        api_client.force_authenticate(client_user)

        response = api_client.post(
            CHECKOUT_URL, {"order_id": str(authorized_payment.order_id)}, format="json"
        )

        assert response.status_code == 409
        assert response.data["error_code"] == "PAYMENT_ALREADY_SECURED"

    def test_requires_authentication(self, api_client, accepted_order):
        response = api_client.post(CHECKOUT_URL, {"order_id": str(accepted_order.id)}, format="json")

        assert response.status_code == 401


@pytest.mark.django_db
class TestPaymentViewSet:
    def test_client_sees_only_own_payments(self, api_client, client_user, pending_payment):
        PaymentFactory()
        api_client.force_authenticate(client_user)

        response = api_client.get(reverse("payments:payment-list"))

        ids = [row["id"] for row in response.data["results"]]
        assert response.status_code == 200
        assert ids == [str(pending_payment.id)]

    def test_pro_sees_payments_for_assigned_jobs(self, api_client, pro_user, pending_payment):
        PaymentFactory()
        api_client.force_authenticate(pro_user)

        response = api_client.get(reverse("payments:payment-list"))

        assert [row["id"] for row in response.data["results"]] == [str(pending_payment.id)]

    def test_admin_syncs_payment(self, api_client, admin_user, pending_payment, fake_provider):
        fake_provider.fetch_payment_status.return_value = ProviderPaymentStatus(
            provider_reference="pref_pending",
            status=PaymentStatus.AUTHORIZED,
            amount_authorized=10000,
        )
        api_client.force_authenticate(admin_user)

        response = api_client.post(reverse("payments:payment-sync", args=[pending_payment.id]))

        assert response.status_code == 200
        assert response.data["result"] == "applied"
        assert response.data["payment"]["status"] == PaymentStatus.AUTHORIZED

    def test_client_cannot_sync(self, api_client, client_user, pending_payment):
        api_client.force_authenticate(client_user)

        response = api_client.post(reverse("payments:payment-sync", args=[pending_payment.id]))

        assert response.status_code == 403

    def test_sync_without_reference_conflicts(self, api_client, admin_user, accepted_order):
        payment = PaymentFactory(order=accepted_order, provider_reference="", status=PaymentStatus.CREATED)
        api_client.force_authenticate(admin_user)

        response = api_client.post(reverse("payments:payment-sync", args=[payment.id]))

        assert response.status_code == 409
        assert response.data["error_code"] == "PAYMENT_NOT_SUBMITTED"


# =============================================================================
# Earnings & payouts
# =============================================================================


@pytest.mark.django_db
class TestEarningListView:
    def test_pro_sees_own_earnings(self, api_client, pro_user, payable_earnings):
        EarningFactory()
        api_client.force_authenticate(pro_user)

        response = api_client.get(reverse("payments:earning-list"))

        assert response.status_code == 200
        assert response.data["count"] == 2

    def test_client_is_forbidden(self, api_client, client_user):
        api_client.force_authenticate(client_user)

        assert api_client.get(reverse("payments:earning-list")).status_code == 403


@pytest.mark.django_db
class TestPayouts:
    def test_admin_lists_payable_pros(self, api_client, admin_user, pro_profile, payout_profile, payable_earnings):
        api_client.force_authenticate(admin_user)

        response = api_client.get(reverse("payments:payable-pros"))

        assert response.status_code == 200
        assert response.data[0]["pro_profile_id"] == pro_profile.id
        assert response.data[0]["total_net"] == 18000

    def test_pro_cannot_list_payables(self, api_client, pro_user):
        api_client.force_authenticate(pro_user)

        assert api_client.get(reverse("payments:payable-pros")).status_code == 403

    def test_admin_creates_and_sends_payout(
        self, api_client, admin_user, pro_profile, payout_profile, payable_earnings, fake_provider,
        inline_payout_sends, django_capture_on_commit_callbacks,
    ):
        api_client.force_authenticate(admin_user)

        created = api_client.post(
            reverse("payments:payout-list"), {"pro_profile_id": pro_profile.id}, format="json"
        )
        with django_capture_on_commit_callbacks(execute=True):
            queued = api_client.post(reverse("payments:payout-send", args=[created.data["id"]]))

        assert created.status_code == 201
        assert created.data["amount"] == 18000
        assert len(created.data["items"]) == 2
        assert queued.status_code == 202
        assert queued.data["status"] == PayoutStatus.CREATED
        assert Payout.objects.get(id=created.data["id"]).status == PayoutStatus.SENT

    def test_incomplete_profile_is_rejected(self, api_client, admin_user, pro_profile, payable_earnings):
        api_client.force_authenticate(admin_user)

        response = api_client.post(
            reverse("payments:payout-list"), {"pro_profile_id": pro_profile.id}, format="json"
        )

        assert response.status_code == 400
        assert response.data["error_code"] == "INCOMPLETE_PAYOUT_PROFILE"

    def test_pro_cannot_create_payout(self, api_client, pro_user, pro_profile):
        api_client.force_authenticate(pro_user)

        response = api_client.post(
            reverse("payments:payout-list"), {"pro_profile_id": pro_profile.id}, format="json"
        )

        assert response.status_code == 403

    def test_pro_sees_own_payouts(self, api_client, pro_user, pro_profile, payout_profile, payable_earnings):
        payout = PayoutService.create_for_pro(pro_profile.id)
        api_client.force_authenticate(pro_user)

        response = api_client.get(reverse("payments:payout-list"))

        assert [row["id"] for row in response.data["results"]] == [str(payout.id)]
        assert all(e.status == EarningStatus.RESERVED for e in payout.earnings.all())


# =============================================================================
# Payout profiles
# =============================================================================


@pytest.mark.django_db
class TestPayoutProfileViews:
    def test_pro_reads_empty_profile(self, api_client, pro_user):
        api_client.force_authenticate(pro_user)

        response = api_client.get(reverse("payments:payout-profile"))

        assert response.status_code == 200
        assert "verified_at" in response.data["missing_fields"]
        assert not response.data["is_complete"]

    def test_pro_edit_clears_verification(self, api_client, pro_user, payout_profile):
        api_client.force_authenticate(pro_user)

        response = api_client.patch(
            reverse("payments:payout-profile"), {"bank_account_number": "555-1"}, format="json"
        )

        assert response.status_code == 200
        assert response.data["bank_account_number"] == "555-1"
        assert response.data["verified_at"] is None

    def test_invalid_currency(self, api_client, pro_user):
        api_client.force_authenticate(pro_user)

        response = api_client.patch(reverse("payments:payout-profile"), {"currency": "12"}, format="json")

        assert response.status_code == 400

    def test_admin_verifies_profile(self, api_client, admin_user):
        profile = ProPayoutProfileFactory(pro_profile=ProProfileFactory(), verified_at=None)
        api_client.force_authenticate(admin_user)

        response = api_client.post(reverse("payments:payout-profile-verify", args=[profile.pro_profile_id]))

        assert response.status_code == 200
        assert response.data["is_complete"]
        assert ProPayoutProfile.objects.get(id=profile.id).verified_by == admin_user

    def test_pro_cannot_verify(self, api_client, pro_user, payout_profile):
        api_client.force_authenticate(pro_user)

        response = api_client.post(
            reverse("payments:payout-profile-verify", args=[payout_profile.pro_profile_id])
        )

        assert response.status_code == 403
