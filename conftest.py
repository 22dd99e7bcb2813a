"""
Root pytest configuration for the Django project.

This module configures pytest-django and provides project-wide fixtures.
App-specific fixtures are defined in each app's tests/conftest.py.
"""

import os

import django
import pytest

# Ensure Django settings are configured before any tests run
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("DATABASE_URL", "sqlite://:memory:")
os.environ.setdefault("USE_LOCMEM_CACHE", "True")
os.environ.setdefault("ENV_FILE", "/nonexistent/.env.test")
os.environ.setdefault("SECURE_SSL_REDIRECT", "False")


def pytest_configure():
    """Configure Django settings before tests run."""
    django.setup()

    from django.conf import settings

    # Disable throttling during tests to prevent rate limit failures
    settings.REST_FRAMEWORK["DEFAULT_THROTTLE_CLASSES"] = []
    settings.REST_FRAMEWORK["DEFAULT_THROTTLE_RATES"] = {}

    # Use fast password hasher for tests
    settings.PASSWORD_HASHERS = [
        "django.contrib.auth.hashers.MD5PasswordHasher",
    ]

    # Payout send retries run without a countdown in tests
    settings.PAYOUT_SEND_BACKOFF_BASE_SECONDS = 0


def pytest_collection_modifyitems(items):
    """
    Auto-mark tests based on filename patterns.

    Mapping:
    - test_integration.py → e2e (full order-to-payout journeys)
    - test_views.py, test_*_service.py, test_tasks.py, etc. → integration
    - test_money.py, test_transitions.py, test_providers.py, etc. → unit
    - Unmatched files → integration (safe default for Django)

    Explicit markers on test functions/classes take precedence.
    """
    e2e_patterns = ["test_integration.py"]

    integration_patterns = [
        "test_views.py",
        "test_tasks.py",
        "test_permissions.py",
        "test_webhooks.py",
        "test_order_orchestrator.py",
        "test_booking_orchestrator.py",
        "test_payout_service.py",
        "test_earning_service.py",
        "test_reconciliation_service.py",
        "test_payment_service.py",
        "test_receipt_service.py",
    ]

    unit_patterns = [
        "test_money.py",
        "test_transitions.py",
        "test_throttling.py",
        "test_fees.py",
        "test_providers.py",
        "test_models.py",
    ]

    for item in items:
        existing_markers = {m.name for m in item.iter_markers()}
        if existing_markers & {"unit", "integration", "e2e"}:
            continue

        filename = str(item.fspath).split("/")[-1]

        if any(pattern in filename for pattern in e2e_patterns):
            item.add_marker(pytest.mark.e2e)
        elif any(pattern in filename for pattern in integration_patterns):
            item.add_marker(pytest.mark.integration)
        elif any(pattern in filename for pattern in unit_patterns):
            item.add_marker(pytest.mark.unit)
        else:
            item.add_marker(pytest.mark.integration)


# =============================================================================
# Shared Fixtures
# =============================================================================


@pytest.fixture
def client_user(db):
    """A client account."""
    from authentication.tests.factories import UserFactory

    return UserFactory()


@pytest.fixture
def pro_profile(db):
    """An active pro charging 5000 (50.00 UYU) per hour."""
    from authentication.tests.factories import ProProfileFactory

    return ProProfileFactory(hourly_rate=5000, currency="UYU")


@pytest.fixture
def pro_user(pro_profile):
    return pro_profile.user


@pytest.fixture
def admin_user(db):
    from authentication.tests.factories import AdminFactory

    return AdminFactory()


@pytest.fixture
def api_client():
    from rest_framework.test import APIClient

    return APIClient()


@pytest.fixture
def fake_provider(mocker):
    """
    Register one MagicMock as every payment provider.

    Provider calls succeed by default: checkout returns "pref_test",
    capture/refund/cancel echo the reference and confirm the outcome,
    send returns "tr_<payout id>".
    Override return_value/side_effect per test.
    """
    from lifecycle import PaymentStatus
    from payments.providers import (
        PaymentProvider,
        ProviderHandle,
        ProviderName,
        ProviderResult,
        set_provider,
    )

    provider = mocker.MagicMock(spec=PaymentProvider)
    provider.name = ProviderName.MERCADO_PAGO
    provider.create_payment_intent.return_value = ProviderHandle(
        provider_reference="pref_test",
        checkout_url="https://checkout.example.com/pref_test",
    )
    provider.capture.side_effect = lambda ref, amount=None, idempotency_key=None: ProviderResult(
        ref, "captured", amount.amount if amount is not None else None, payment_status=PaymentStatus.CAPTURED
    )
    provider.refund.side_effect = lambda ref, amount=None, idempotency_key=None: ProviderResult(
        ref, "refunded", amount.amount if amount is not None else None, payment_status=PaymentStatus.REFUNDED
    )
    provider.cancel_authorization.side_effect = lambda ref, idempotency_key=None: ProviderResult(
        ref, "cancelled", payment_status=PaymentStatus.CANCELLED
    )
    provider.send.side_effect = lambda payout_id, destination, amount, idempotency_key: ProviderResult(
        f"tr_{payout_id}", "sent", amount.amount
    )

    for name in ProviderName.values:
        set_provider(name, provider)
    yield provider
    for name in ProviderName.values:
        set_provider(name, None)


@pytest.fixture
def inline_payout_sends(mocker):
    """
    Run the send_payout task PayoutService.send queues, retries included.

    The task is queued on commit, so wrap the send:
        with django_capture_on_commit_callbacks(execute=True):
            PayoutService.send(payout.id)
    """
    from payments.tasks import send_payout

    queued = mocker.patch("payments.tasks.send_payout")
    queued.delay.side_effect = lambda *args: send_payout.apply(args=args).get()
    return queued
