import uuid
from decimal import Decimal

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ("orders", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="OrderLineItem",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                (
                    "kind",
                    models.CharField(
                        choices=[("labor", "Labor"), ("platform_fee", "Platform fee"), ("tax", "Tax")],
                        max_length=16,
                    ),
                ),
                ("position", models.PositiveSmallIntegerField(default=0)),
                ("description", models.CharField(max_length=255)),
                ("quantity", models.DecimalField(decimal_places=2, default=Decimal("1"), max_digits=8)),
                ("unit_amount", models.PositiveBigIntegerField(help_text="Amount per unit, in minor units")),
                ("amount", models.PositiveBigIntegerField(help_text="Line amount, in minor units")),
                ("currency", models.CharField(max_length=3)),
                (
                    "rate_percent",
                    models.DecimalField(
                        blank=True,
                        decimal_places=3,
                        help_text="Percentage applied, for percent fees and tax",
                        max_digits=6,
                        null=True,
                    ),
                ),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="line_items",
                        to="orders.order",
                    ),
                ),
            ],
            options={
                "verbose_name": "Order line item",
                "verbose_name_plural": "Order line items",
                "ordering": ["order", "position"],
                "constraints": [
                    models.UniqueConstraint(fields=("order", "kind"), name="orders_line_item_one_per_kind"),
                ],
            },
        ),
        migrations.CreateModel(
            name="OrderReceipt",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("line_items", models.JSONField(default=list)),
                ("labor_amount", models.PositiveBigIntegerField()),
                ("platform_fee_amount", models.PositiveBigIntegerField()),
                ("platform_fee_rate", models.DecimalField(blank=True, decimal_places=3, max_digits=6, null=True)),
                ("tax_amount", models.PositiveBigIntegerField()),
                ("tax_rate", models.DecimalField(decimal_places=3, max_digits=6)),
                ("subtotal_amount", models.PositiveBigIntegerField(help_text="Total without the IVA it contains")),
                ("total_amount", models.PositiveBigIntegerField(help_text="Amount charged to the client")),
                ("pro_net_amount", models.PositiveBigIntegerField(help_text="Total minus the platform fee")),
                ("currency", models.CharField(max_length=3)),
                ("approved_hours", models.DecimalField(blank=True, decimal_places=2, max_digits=6, null=True)),
                ("finalized_at", models.DateTimeField()),
                (
                    "order",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="receipt",
                        to="orders.order",
                    ),
                ),
            ],
            options={
                "verbose_name": "Order receipt",
                "verbose_name_plural": "Order receipts",
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("tax_amount__lte", models.F("total_amount"))),
                        name="orders_receipt_tax_within_total",
                    ),
                ],
            },
        ),
    ]
