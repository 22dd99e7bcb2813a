import uuid

import django.db.models.deletion
import django_fsm
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("authentication", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Order",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("version", models.PositiveIntegerField(default=1, help_text="Version for optimistic locking - incremented on each save")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("draft", "Draft"),
                            ("pending_pro_confirmation", "Pending Pro Confirmation"),
                            ("accepted", "Accepted"),
                            ("confirmed", "Confirmed"),
                            ("in_progress", "In Progress"),
                            ("awaiting_client_approval", "Awaiting Client Approval"),
                            ("completed", "Completed"),
                            ("paid", "Paid"),
                            ("disputed", "Disputed"),
                            ("canceled", "Canceled"),
                        ],
                        db_index=True,
                        default="draft",
                        help_text="Current status of the order (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                ("category_id", models.CharField(db_index=True, max_length=64)),
                ("subcategory_id", models.CharField(blank=True, default="", max_length=64)),
                ("description", models.TextField(blank=True, default="")),
                ("address_text", models.CharField(blank=True, default="", max_length=255)),
                ("scheduled_window_start", models.DateTimeField(blank=True, null=True)),
                ("scheduled_window_end", models.DateTimeField(blank=True, null=True)),
                ("pricing_mode", models.CharField(choices=[("hourly", "Hourly"), ("fixed", "Fixed quote")], default="hourly", max_length=10)),
                ("hourly_rate_snapshot", models.PositiveBigIntegerField(blank=True, help_text="Pro hourly rate at creation time, in minor units", null=True)),
                ("estimated_hours", models.DecimalField(blank=True, decimal_places=2, max_digits=6, null=True)),
                ("final_hours", models.DecimalField(blank=True, decimal_places=2, max_digits=6, null=True)),
                ("quoted_amount", models.PositiveBigIntegerField(blank=True, help_text="Fixed quote from the pro, in minor units", null=True)),
                ("quote_accepted_at", models.DateTimeField(blank=True, null=True)),
                ("total_amount", models.PositiveBigIntegerField(blank=True, help_text="Final amount charged, set on client approval", null=True)),
                ("currency", models.CharField(default="UYU", max_length=3)),
                ("submitted_at", models.DateTimeField(blank=True, null=True)),
                ("accepted_at", models.DateTimeField(blank=True, null=True)),
                ("confirmed_at", models.DateTimeField(blank=True, null=True)),
                ("started_at", models.DateTimeField(blank=True, null=True)),
                ("arrived_at", models.DateTimeField(blank=True, null=True)),
                ("completion_submitted_at", models.DateTimeField(blank=True, null=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("disputed_at", models.DateTimeField(blank=True, null=True)),
                ("paid_at", models.DateTimeField(blank=True, null=True)),
                ("canceled_at", models.DateTimeField(blank=True, null=True)),
                ("cancel_reason", models.CharField(blank=True, default="", max_length=255)),
                ("canceled_by_role", models.CharField(blank=True, default="", max_length=16)),
                ("dispute_reason", models.TextField(blank=True, default="")),
                (
                    "client",
                    models.ForeignKey(
                        help_text="Client who booked the job",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="orders",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "pro_profile",
                    models.ForeignKey(
                        help_text="Professional doing the job",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="orders",
                        to="authentication.proprofile",
                    ),
                ),
            ],
            options={
                "verbose_name": "Order",
                "verbose_name_plural": "Orders",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["client", "status"], name="orders_orde_client__f1a2b3_idx"),
                    models.Index(fields=["pro_profile", "status"], name="orders_orde_pro_pro_c4d5e6_idx"),
                    models.Index(fields=["status", "completion_submitted_at"], name="orders_orde_status_a7b8c9_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Booking",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("version", models.PositiveIntegerField(default=1, help_text="Version for optimistic locking - incremented on each save")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending_payment", "Pending Payment"),
                            ("pending", "Pending"),
                            ("accepted", "Accepted"),
                            ("on_my_way", "On My Way"),
                            ("arrived", "Arrived"),
                            ("completed", "Completed"),
                            ("rejected", "Rejected"),
                            ("cancelled", "Cancelled"),
                        ],
                        db_index=True,
                        default="pending_payment",
                        help_text="Current status of the booking (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                ("estimated_amount", models.PositiveBigIntegerField(help_text="Amount in minor units")),
                ("currency", models.CharField(default="UYU", max_length=3)),
                ("scheduled_at", models.DateTimeField(blank=True, null=True)),
                ("notes", models.TextField(blank=True, default="")),
                ("payment_received_at", models.DateTimeField(blank=True, null=True)),
                ("accepted_at", models.DateTimeField(blank=True, null=True)),
                ("on_my_way_at", models.DateTimeField(blank=True, null=True)),
                ("arrived_at", models.DateTimeField(blank=True, null=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("rejected_at", models.DateTimeField(blank=True, null=True)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("reason", models.CharField(blank=True, default="", max_length=255)),
                (
                    "client",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="bookings",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "pro_profile",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="bookings",
                        to="authentication.proprofile",
                    ),
                ),
            ],
            options={
                "verbose_name": "Booking",
                "verbose_name_plural": "Bookings",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status", "created_at"], name="orders_book_status_d1e2f3_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("estimated_amount__gt", 0)),
                        name="booking_estimated_amount_positive",
                    ),
                ],
            },
        ),
    ]
