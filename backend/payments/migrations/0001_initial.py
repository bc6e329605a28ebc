import uuid
from decimal import Decimal

import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("outlets", "0001_initial"),
        ("orders", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Payment",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                (
                    "attempt_token",
                    models.CharField(help_text="Caller-supplied key that makes resubmission idempotent", max_length=64),
                ),
                (
                    "mode",
                    models.CharField(
                        choices=[("single", "Single"), ("split", "Split"), ("room_charge", "Room Charge")],
                        default="single",
                        max_length=20,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("awaiting_change", "Awaiting Change"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                        ],
                        default="pending",
                        help_text="The current status of the payment.",
                        max_length=20,
                    ),
                ),
                ("currency", models.CharField(default="XOF", max_length=3)),
                (
                    "amount_due",
                    models.DecimalField(
                        decimal_places=2, help_text="Order total at the time the attempt started.", max_digits=14
                    ),
                ),
                ("amount_tendered", models.DecimalField(decimal_places=2, default=Decimal("0"), max_digits=14)),
                ("change_due", models.DecimalField(decimal_places=2, default=Decimal("0"), max_digits=14)),
                ("change_breakdown", models.JSONField(blank=True, null=True)),
                (
                    "change_unrepresentable",
                    models.DecimalField(
                        decimal_places=2,
                        default=Decimal("0"),
                        help_text="Part of the change the note/coin ladder cannot express",
                        max_digits=14,
                    ),
                ),
                ("change_returned_at", models.DateTimeField(blank=True, null=True)),
                ("failure_reason", models.CharField(blank=True, max_length=255)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now, editable=False)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payments",
                        to="orders.order",
                    ),
                ),
                (
                    "organization",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="payments",
                        to="outlets.organization",
                    ),
                ),
            ],
            options={
                "verbose_name": "Payment",
                "verbose_name_plural": "Payments",
                "ordering": ["-created_at"],
                "constraints": [
                    models.UniqueConstraint(fields=("order", "attempt_token"), name="unique_payment_attempt"),
                ],
                "indexes": [
                    models.Index(fields=["organization", "status"], name="payment_org_status_idx"),
                    models.Index(fields=["order", "status"], name="payment_order_status_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Settlement",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("position", models.PositiveIntegerField(help_text="Index of the instrument within its attempt")),
                (
                    "method",
                    models.CharField(
                        choices=[
                            ("cash", "Cash"),
                            ("card", "Card"),
                            ("mobile_money", "Mobile Money"),
                            ("room_charge", "Room Charge"),
                        ],
                        max_length=20,
                    ),
                ),
                ("amount", models.DecimalField(decimal_places=2, max_digits=14)),
                ("amount_tendered", models.DecimalField(decimal_places=2, max_digits=14)),
                ("change", models.DecimalField(decimal_places=2, default=Decimal("0"), max_digits=14)),
                (
                    "reference",
                    models.CharField(
                        blank=True, help_text="Mobile money transaction reference, folio id...", max_length=255
                    ),
                ),
                (
                    "external_charge_id",
                    models.CharField(
                        blank=True,
                        help_text="Charge id returned by the folio service for room charges",
                        max_length=255,
                    ),
                ),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now, editable=False)),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="settlements",
                        to="orders.order",
                    ),
                ),
                (
                    "organization",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="settlements",
                        to="outlets.organization",
                    ),
                ),
                (
                    "payment",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="settlements",
                        to="payments.payment",
                    ),
                ),
            ],
            options={
                "verbose_name": "Settlement",
                "verbose_name_plural": "Settlements",
                "ordering": ["created_at", "position"],
                "constraints": [
                    models.UniqueConstraint(fields=("payment", "position"), name="unique_settlement_position"),
                ],
                "indexes": [
                    models.Index(fields=["organization", "method"], name="settlement_org_method_idx"),
                    models.Index(fields=["order"], name="settlement_order_idx"),
                ],
            },
        ),
    ]
