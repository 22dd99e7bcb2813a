import uuid

import django.db.models.deletion
import django_fsm
from django.conf import settings
from django.db import migrations, models

PROVIDER_CHOICES = [
    ("stripe", "Stripe"),
    ("mercado_pago", "Mercado Pago"),
    ("manual", "Manual bank transfer"),
]


def _timestamps():
    return [
        ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
        ("updated_at", models.DateTimeField(auto_now=True)),
    ]


def _version():
    return ("version", models.PositiveIntegerField(default=1, help_text="Version for optimistic locking - incremented on each save"))


def _uuid_pk():
    return ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False))


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("authentication", "0001_initial"),
        ("orders", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Payment",
            fields=[
                *_timestamps(),
                _version(),
                _uuid_pk(),
                ("provider", models.CharField(choices=PROVIDER_CHOICES, max_length=32)),
                ("provider_reference", models.CharField(blank=True, db_index=True, default="", help_text="Provider id (PaymentIntent id, Mercado Pago preference/payment id)", max_length=255)),
                ("checkout_url", models.URLField(blank=True, default="", max_length=2048)),
                ("idempotency_key", models.CharField(help_text="Key used when creating the payment at the provider", max_length=255, unique=True)),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("created", "Created"),
                            ("requires_action", "Requires Action"),
                            ("authorized", "Authorized"),
                            ("captured", "Captured"),
                            ("failed", "Failed"),
                            ("refunded", "Refunded"),
                            ("cancelled", "Cancelled"),
                        ],
                        db_index=True,
                        default="created",
                        help_text="Current status of the payment (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                ("amount_estimated", models.PositiveBigIntegerField()),
                ("amount_authorized", models.PositiveBigIntegerField(default=0)),
                ("amount_captured", models.PositiveBigIntegerField(default=0)),
                ("amount_refunded", models.PositiveBigIntegerField(default=0)),
                ("currency", models.CharField(max_length=3)),
                ("is_inconsistent", models.BooleanField(default=False, help_text="Amounts break captured <= authorized <= estimated")),
                ("authorized_at", models.DateTimeField(blank=True, null=True)),
                ("captured_at", models.DateTimeField(blank=True, null=True)),
                ("failed_at", models.DateTimeField(blank=True, null=True)),
                ("refunded_at", models.DateTimeField(blank=True, null=True)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("failure_reason", models.TextField(blank=True, default="")),
                (
                    "booking",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payments",
                        to="orders.booking",
                    ),
                ),
                (
                    "order",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payments",
                        to="orders.order",
                    ),
                ),
            ],
            options={
                "verbose_name": "Payment",
                "verbose_name_plural": "Payments",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status", "updated_at"], name="payment_status_updated_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=(
                            models.Q(order__isnull=False, booking__isnull=True)
                            | models.Q(order__isnull=True, booking__isnull=False)
                        ),
                        name="payment_order_xor_booking",
                    ),
                    models.UniqueConstraint(
                        condition=~models.Q(provider_reference=""),
                        fields=("provider", "provider_reference"),
                        name="payment_unique_provider_reference",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="PaymentEvent",
            fields=[
                *_timestamps(),
                _uuid_pk(),
                ("provider", models.CharField(choices=PROVIDER_CHOICES, max_length=32)),
                ("provider_reference", models.CharField(db_index=True, max_length=255)),
                ("event_type", models.CharField(max_length=64)),
                ("payload_hash", models.CharField(max_length=64)),
                ("fingerprint", models.CharField(max_length=64, unique=True)),
                ("payload", models.JSONField(blank=True, default=dict)),
                ("occurred_at", models.DateTimeField(blank=True, null=True)),
                ("processed_at", models.DateTimeField(blank=True, null=True)),
                ("amount", models.BigIntegerField(blank=True, null=True)),
                ("currency", models.CharField(blank=True, default="", max_length=3)),
                ("external_reference", models.CharField(blank=True, default="", max_length=255)),
            ],
            options={
                "verbose_name": "Payment event",
                "verbose_name_plural": "Payment events",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["provider", "provider_reference"], name="paymentevent_ref_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="OrphanedPaymentEvent",
            fields=[
                *_timestamps(),
                _uuid_pk(),
                ("attempts", models.PositiveIntegerField(default=0)),
                ("last_attempt_at", models.DateTimeField(blank=True, null=True)),
                ("resolved_at", models.DateTimeField(blank=True, db_index=True, null=True)),
                (
                    "event",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="orphan",
                        to="payments.paymentevent",
                    ),
                ),
            ],
            options={
                "verbose_name": "Orphaned payment event",
                "verbose_name_plural": "Orphaned payment events",
                "ordering": ["created_at"],
            },
        ),
        migrations.CreateModel(
            name="Payout",
            fields=[
                *_timestamps(),
                _version(),
                _uuid_pk(),
                ("provider", models.CharField(choices=PROVIDER_CHOICES, max_length=32)),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("created", "Created"),
                            ("sent", "Sent"),
                            ("settled", "Settled"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="created",
                        help_text="Current status of the payout (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                ("amount", models.PositiveBigIntegerField(help_text="Amount in minor units")),
                ("currency", models.CharField(max_length=3)),
                ("provider_reference", models.CharField(blank=True, db_index=True, default="", max_length=255)),
                ("sent_at", models.DateTimeField(blank=True, null=True)),
                ("settled_at", models.DateTimeField(blank=True, null=True)),
                ("failed_at", models.DateTimeField(blank=True, null=True)),
                ("failure_reason", models.TextField(blank=True, default="")),
                ("attempt_count", models.PositiveIntegerField(default=0)),
                (
                    "pro_profile",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payouts",
                        to="authentication.proprofile",
                    ),
                ),
            ],
            options={
                "verbose_name": "Payout",
                "verbose_name_plural": "Payouts",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["pro_profile", "status"], name="payout_pro_status_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(amount__gt=0), name="payout_amount_positive"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Earning",
            fields=[
                *_timestamps(),
                _version(),
                _uuid_pk(),
                ("gross_amount", models.PositiveBigIntegerField(help_text="Order total")),
                ("platform_fee_amount", models.PositiveBigIntegerField()),
                ("net_amount", models.PositiveBigIntegerField(help_text="gross - platform fee")),
                ("currency", models.CharField(max_length=3)),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("payable", "Payable"),
                            ("reserved", "Reserved"),
                            ("paid", "Paid"),
                            ("reversed", "Reversed"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current status of the earning (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                ("available_at", models.DateTimeField(blank=True, db_index=True, help_text="When a PENDING earning becomes payable (cooling-off)", null=True)),
                ("paid_at", models.DateTimeField(blank=True, null=True)),
                ("reversed_at", models.DateTimeField(blank=True, null=True)),
                ("reversal_reason", models.CharField(blank=True, default="", max_length=255)),
                (
                    "order",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="earning",
                        to="orders.order",
                    ),
                ),
                (
                    "pro_profile",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="earnings",
                        to="authentication.proprofile",
                    ),
                ),
                (
                    "payout",
                    models.ForeignKey(
                        blank=True,
                        help_text="Open payout currently holding this earning",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="earnings",
                        to="payments.payout",
                    ),
                ),
            ],
            options={
                "verbose_name": "Earning",
                "verbose_name_plural": "Earnings",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["pro_profile", "status"], name="earning_pro_status_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(net_amount=models.F("gross_amount") - models.F("platform_fee_amount")),
                        name="earning_net_equals_gross_minus_fee",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="PayoutItem",
            fields=[
                *_timestamps(),
                _uuid_pk(),
                ("amount", models.PositiveBigIntegerField()),
                (
                    "earning",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payout_items",
                        to="payments.earning",
                    ),
                ),
                (
                    "payout",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="items",
                        to="payments.payout",
                    ),
                ),
            ],
            options={
                "ordering": ["created_at"],
                "constraints": [
                    models.UniqueConstraint(fields=("payout", "earning"), name="payoutitem_unique_payout_earning"),
                ],
            },
        ),
        migrations.CreateModel(
            name="PayoutAttempt",
            fields=[
                *_timestamps(),
                _uuid_pk(),
                ("attempt_number", models.PositiveIntegerField()),
                ("idempotency_key", models.CharField(max_length=255)),
                (
                    "outcome",
                    models.CharField(
                        choices=[("accepted", "Accepted"), ("rejected", "Rejected"), ("unknown", "Unknown")],
                        default="unknown",
                        max_length=16,
                    ),
                ),
                ("provider_reference", models.CharField(blank=True, default="", max_length=255)),
                ("error", models.TextField(blank=True, default="")),
                (
                    "payout",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="attempts",
                        to="payments.payout",
                    ),
                ),
            ],
            options={
                "ordering": ["attempt_number"],
                "constraints": [
                    models.UniqueConstraint(fields=("payout", "attempt_number"), name="payoutattempt_unique_number"),
                ],
            },
        ),
        migrations.CreateModel(
            name="ProPayoutProfile",
            fields=[
                *_timestamps(),
                _uuid_pk(),
                ("full_name", models.CharField(blank=True, default="", max_length=200)),
                ("document_id", models.CharField(blank=True, default="", max_length=64)),
                ("bank_name", models.CharField(blank=True, default="", max_length=120)),
                ("bank_account_number", models.CharField(blank=True, default="", max_length=64)),
                ("provider_destination", models.CharField(blank=True, default="", help_text="Provider account id payouts are sent to", max_length=255)),
                ("currency", models.CharField(default="UYU", max_length=3)),
                ("verified_at", models.DateTimeField(blank=True, null=True)),
                (
                    "pro_profile",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="payout_profile",
                        to="authentication.proprofile",
                    ),
                ),
                (
                    "verified_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Pro payout profile",
                "verbose_name_plural": "Pro payout profiles",
            },
        ),
    ]
