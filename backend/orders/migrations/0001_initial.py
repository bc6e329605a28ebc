import uuid
from decimal import Decimal

import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ("outlets", "0001_initial"),
        ("tables", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Order",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("order_number", models.CharField(blank=True, max_length=20, null=True)),
                (
                    "order_type",
                    models.CharField(
                        choices=[
                            ("dine_in", "Dine In"),
                            ("takeaway", "Takeaway"),
                            ("delivery", "Delivery"),
                            ("room_service", "Room Service"),
                        ],
                        default="dine_in",
                        max_length=20,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("draft", "Draft"),
                            ("sent", "Sent"),
                            ("preparing", "Preparing"),
                            ("ready", "Ready"),
                            ("served", "Served"),
                            ("paid", "Paid"),
                            ("cancelled", "Cancelled"),
                        ],
                        default="draft",
                        max_length=20,
                    ),
                ),
                (
                    "guest_id",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        help_text="Hotel guest reference for room service and room charges",
                        max_length=100,
                        null=True,
                    ),
                ),
                (
                    "folio_id",
                    models.CharField(
                        blank=True, help_text="Guest folio that room charges are posted to", max_length=100, null=True
                    ),
                ),
                (
                    "customer_count",
                    models.PositiveIntegerField(default=1, validators=[django.core.validators.MinValueValidator(1)]),
                ),
                ("notes", models.TextField(blank=True)),
                (
                    "discount_type",
                    models.CharField(
                        choices=[("none", "None"), ("percentage", "Percentage"), ("amount", "Fixed Amount")],
                        default="none",
                        max_length=20,
                    ),
                ),
                ("discount_value", models.DecimalField(decimal_places=2, default=Decimal("0"), max_digits=14)),
                ("subtotal", models.DecimalField(decimal_places=2, default=Decimal("0"), max_digits=14)),
                ("discount_amount", models.DecimalField(decimal_places=2, default=Decimal("0"), max_digits=14)),
                ("service_charge", models.DecimalField(decimal_places=2, default=Decimal("0"), max_digits=14)),
                ("tax_amount", models.DecimalField(decimal_places=2, default=Decimal("0"), max_digits=14)),
                ("total_amount", models.DecimalField(decimal_places=2, default=Decimal("0"), max_digits=14)),
                ("version", models.PositiveIntegerField(default=1)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now, editable=False)),
                ("updated_at", models.DateTimeField(default=django.utils.timezone.now, editable=False)),
                ("sent_at", models.DateTimeField(blank=True, null=True)),
                ("paid_at", models.DateTimeField(blank=True, db_index=True, null=True)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("cancellation_reason", models.CharField(blank=True, max_length=255)),
                (
                    "cashier",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="orders_as_cashier",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "organization",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="orders",
                        to="outlets.organization",
                    ),
                ),
                (
                    "outlet",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="orders",
                        to="outlets.outlet",
                    ),
                ),
                (
                    "server",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="orders",
                        to="tables.server",
                    ),
                ),
                (
                    "table",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="orders",
                        to="tables.table",
                    ),
                ),
            ],
            options={
                "verbose_name": "Order",
                "verbose_name_plural": "Orders",
                "ordering": ["-created_at", "order_number"],
                "indexes": [
                    models.Index(fields=["organization", "status"], name="order_org_status_idx"),
                    models.Index(fields=["organization", "outlet", "-created_at"], name="order_outlet_created_idx"),
                    models.Index(fields=["organization", "table", "status"], name="order_table_status_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(order_number__isnull=False),
                        fields=("organization", "order_number"),
                        name="unique_order_number_per_org",
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(table__isnull=False) & ~models.Q(status__in=["paid", "cancelled"]),
                        fields=("table",),
                        name="unique_active_order_per_table",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="OrderItem",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("product_id", models.CharField(max_length=64)),
                ("product_name", models.CharField(max_length=200)),
                ("product_code", models.CharField(blank=True, max_length=64)),
                (
                    "unit_price",
                    models.DecimalField(
                        decimal_places=2, help_text="Price of the product at the time it was added.", max_digits=14
                    ),
                ),
                (
                    "quantity",
                    models.PositiveIntegerField(default=1, validators=[django.core.validators.MinValueValidator(1)]),
                ),
                ("total_price", models.DecimalField(decimal_places=2, default=Decimal("0"), max_digits=14)),
                ("special_instructions", models.TextField(blank=True, help_text="Kitchen notes, e.g. 'no onions'")),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("sent", "Sent to Kitchen"),
                            ("preparing", "Preparing"),
                            ("ready", "Ready"),
                            ("served", "Served"),
                            ("cancelled", "Cancelled"),
                        ],
                        default="pending",
                        max_length=20,
                    ),
                ),
                (
                    "fire_round",
                    models.PositiveIntegerField(blank=True, help_text="Kitchen wave this item was sent with", null=True),
                ),
                ("sent_at", models.DateTimeField(blank=True, null=True)),
                ("status_changed_at", models.DateTimeField(blank=True, null=True)),
                ("cancellation_reason", models.CharField(blank=True, max_length=255)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now, editable=False)),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="items",
                        to="orders.order",
                    ),
                ),
                (
                    "organization",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="order_items",
                        to="outlets.organization",
                    ),
                ),
            ],
            options={
                "verbose_name": "Order Item",
                "verbose_name_plural": "Order Items",
                "ordering": ["created_at", "id"],
                "indexes": [
                    models.Index(fields=["organization", "order"], name="item_org_order_idx"),
                    models.Index(fields=["organization", "status"], name="item_org_status_idx"),
                    models.Index(fields=["order", "fire_round"], name="item_order_round_idx"),
                ],
            },
        ),
    ]
