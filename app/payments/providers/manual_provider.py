"""
Manual bank-transfer payout provider.

An operator makes the bank transfer outside the platform; send() only
records that the payout was handed off. The payout settles when an admin
(or a payout.settled event) confirms the transfer. Client payments
cannot go through this provider.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from payments.exceptions import ProviderRejected, WebhookVerificationError
from payments.providers.base import PaymentProvider, ProviderName, ProviderResult

if TYPE_CHECKING:
    from typing import Any

    from django.http import HttpRequest

    from core.money import Money

logger = logging.getLogger(__name__)


class ManualProvider(PaymentProvider):
    name = ProviderName.MANUAL

    def send(
        self,
        payout_id: str,
        destination: dict[str, Any],
        amount: Money,
        idempotency_key: str,
    ) -> ProviderResult:
        if not destination.get("bank_account_number") and not destination.get("provider_destination"):
            raise ProviderRejected(
                "Manual payout needs a bank account",
                provider=self.name,
                provider_code="missing_destination",
            )

        reference = f"manual-{payout_id}"
        logger.info(
            "Manual payout queued for bank transfer",
            extra={
                "payout_id": str(payout_id),
                "amount": amount.amount,
                "currency": amount.currency,
                "bank_name": destination.get("bank_name"),
                "idempotency_key": idempotency_key,
            },
        )
        return ProviderResult(provider_reference=reference, status="queued", amount=amount.amount)

    # =========================================================================
    # Unsupported payment operations
    # =========================================================================

    def _unsupported(self, operation: str):
        raise ProviderRejected(
            f"Manual provider does not support {operation}",
            error_code="UNSUPPORTED_OPERATION",
            provider=self.name,
        )

    def parse_webhook(self, request: HttpRequest):
        raise WebhookVerificationError("Manual provider does not accept webhooks")

    def create_payment_intent(self, order_id, amount, idempotency_key, payment_id=None):
        self._unsupported("payments")

    def capture(self, provider_reference, amount=None, idempotency_key=None):
        self._unsupported("capture")

    def refund(self, provider_reference, amount=None, idempotency_key=None):
        self._unsupported("refund")

    def cancel_authorization(self, provider_reference, idempotency_key=None):
        self._unsupported("cancel_authorization")

    def fetch_payment_status(self, provider_reference):
        self._unsupported("fetch_payment_status")
