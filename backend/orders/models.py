import re
import uuid
from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import IntegrityError, models, transaction
from django.db.models.functions import Length
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from outlets.managers import OrganizationManager


class Order(models.Model):
    # --- Status Fields ---
    class OrderStatus(models.TextChoices):
        DRAFT = "draft", _("Draft")  # Being built at the register
        SENT = "sent", _("Sent")  # At least one round fired to the kitchen
        PREPARING = "preparing", _("Preparing")
        READY = "ready", _("Ready")
        SERVED = "served", _("Served")
        PAID = "paid", _("Paid")  # Set only by the payment engine
        CANCELLED = "cancelled", _("Cancelled")

    class OrderType(models.TextChoices):
        DINE_IN = "dine_in", _("Dine In")
        TAKEAWAY = "takeaway", _("Takeaway")
        DELIVERY = "delivery", _("Delivery")
        ROOM_SERVICE = "room_service", _("Room Service")

    class DiscountType(models.TextChoices):
        NONE = "none", _("None")
        PERCENTAGE = "percentage", _("Percentage")
        AMOUNT = "amount", _("Fixed Amount")

    TERMINAL_STATUSES = (OrderStatus.PAID, OrderStatus.CANCELLED)

    # Forward order of the status lattice (cancelled sits outside it)
    STATUS_SEQUENCE = (
        OrderStatus.DRAFT,
        OrderStatus.SENT,
        OrderStatus.PREPARING,
        OrderStatus.READY,
        OrderStatus.SERVED,
        OrderStatus.PAID,
    )

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    organization = models.ForeignKey(
        "outlets.Organization", on_delete=models.CASCADE, related_name="orders"
    )
    outlet = models.ForeignKey(
        "outlets.Outlet", on_delete=models.PROTECT, related_name="orders"
    )
    order_number = models.CharField(max_length=20, blank=True, null=True)
    order_type = models.CharField(
        max_length=20, choices=OrderType.choices, default=OrderType.DINE_IN
    )
    status = models.CharField(
        max_length=20, choices=OrderStatus.choices, default=OrderStatus.DRAFT
    )

    # --- Relationships ---
    table = models.ForeignKey(
        "tables.Table",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="orders",
    )
    cashier = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="orders_as_cashier",
    )
    server = models.ForeignKey(
        "tables.Server",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="orders",
    )

    # --- Hotel Guest Fields ---
    guest_id = models.CharField(
        max_length=100, blank=True, null=True, db_index=True,
        help_text=_("Hotel guest reference for room service and room charges"),
    )
    folio_id = models.CharField(
        max_length=100, blank=True, null=True,
        help_text=_("Guest folio that room charges are posted to"),
    )

    customer_count = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])
    notes = models.TextField(blank=True)

    # --- Requested Discount ---
    discount_type = models.CharField(
        max_length=20, choices=DiscountType.choices, default=DiscountType.NONE
    )
    discount_value = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0"))

    # --- Financial Fields (derived, written only by OrderCalculationService) ---
    subtotal = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0"))
    discount_amount = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0"))
    service_charge = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0"))
    tax_amount = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0"))
    total_amount = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0"))

    # Incremented by every mutation; drives last-writer-wins refreshes
    version = models.PositiveIntegerField(default=1)

    created_at = models.DateTimeField(default=timezone.now, editable=False)
    updated_at = models.DateTimeField(default=timezone.now, editable=False)
    sent_at = models.DateTimeField(null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True, db_index=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancellation_reason = models.CharField(max_length=255, blank=True)

    objects = OrganizationManager()
    all_objects = models.Manager()

    class Meta:
        ordering = ["-created_at", "order_number"]
        verbose_name = _("Order")
        verbose_name_plural = _("Orders")
        indexes = [
            models.Index(fields=["organization", "status"], name="order_org_status_idx"),
            models.Index(fields=["organization", "outlet", "-created_at"], name="order_outlet_created_idx"),
            models.Index(fields=["organization", "table", "status"], name="order_table_status_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["organization", "order_number"],
                condition=models.Q(order_number__isnull=False),
                name="unique_order_number_per_org",
            ),
            # One active order per table
            models.UniqueConstraint(
                fields=["table"],
                condition=models.Q(table__isnull=False) & ~models.Q(status__in=["paid", "cancelled"]),
                name="unique_active_order_per_table",
            ),
        ]

    def __str__(self):
        return f"Order {self.order_number or self.pk} ({self.order_type}) - {self.status}"

    @property
    def is_terminal(self) -> bool:
        return self.status in self.TERMINAL_STATUSES

    @property
    def currency(self) -> str:
        return self.outlet.currency

    def bump_version(self):
        self.version = (self.version or 0) + 1
        self.updated_at = timezone.now()

    def save(self, *args, **kwargs):
        # Generate order_number only if it's not already set
        if not self.order_number:
            max_retries = 5
            for _attempt in range(max_retries):
                self.order_number = self._generate_sequential_order_number()
                try:
                    with transaction.atomic():
                        super().save(*args, **kwargs)
                    break
                except IntegrityError as e:
                    # Another register may have taken the number; anything else is real
                    if "order_number" not in str(e) and "unique_order_number_per_org" not in str(e):
                        raise
            else:
                raise IntegrityError("Failed to generate a unique order number after multiple retries.")
        else:
            super().save(*args, **kwargs)

    def _generate_sequential_order_number(self):
        """
        Next sequential order number for this organization, e.g. POS-00042.
        The prefix comes from POS_ENGINE['ORDER_NUMBER_PREFIX'].
        """
        from outlets.config import engine_settings

        prefix = f"{engine_settings.order_number_prefix}-"
        last_order = (
            Order.all_objects.filter(
                organization_id=self.organization_id,
                order_number__startswith=prefix,
            )
            # Longest first so POS-100000 sorts after POS-99999
            .order_by(Length("order_number").desc(), "-order_number")
            .first()
        )

        next_number = 1
        if last_order and last_order.order_number:
            match = re.match(rf"^{re.escape(prefix)}(\d+)$", last_order.order_number)
            if match:
                next_number = int(match.group(1)) + 1

        return f"{prefix}{next_number:05d}"


class OrderItem(models.Model):
    class ItemStatus(models.TextChoices):
        PENDING = "pending", _("Pending")
        SENT = "sent", _("Sent to Kitchen")
        PREPARING = "preparing", _("Preparing")
        READY = "ready", _("Ready")
        SERVED = "served", _("Served")
        CANCELLED = "cancelled", _("Cancelled")

    TERMINAL_STATUSES = (ItemStatus.SERVED, ItemStatus.CANCELLED)

    STATUS_SEQUENCE = (
        ItemStatus.PENDING,
        ItemStatus.SENT,
        ItemStatus.PREPARING,
        ItemStatus.READY,
        ItemStatus.SERVED,
    )

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    organization = models.ForeignKey(
        "outlets.Organization", on_delete=models.CASCADE, related_name="order_items"
    )
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="items")

    # Product snapshot, frozen at add time
    product_id = models.CharField(max_length=64)
    product_name = models.CharField(max_length=200)
    product_code = models.CharField(max_length=64, blank=True)
    unit_price = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        help_text=_("Price of the product at the time it was added."),
    )

    quantity = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])
    total_price = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0"))
    special_instructions = models.TextField(
        blank=True, help_text=_("Kitchen notes, e.g. 'no onions'")
    )

    status = models.CharField(
        max_length=20, choices=ItemStatus.choices, default=ItemStatus.PENDING
    )
    fire_round = models.PositiveIntegerField(
        null=True, blank=True, help_text=_("Kitchen wave this item was sent with")
    )
    sent_at = models.DateTimeField(null=True, blank=True)
    status_changed_at = models.DateTimeField(null=True, blank=True)
    cancellation_reason = models.CharField(max_length=255, blank=True)

    created_at = models.DateTimeField(default=timezone.now, editable=False)

    objects = OrganizationManager()
    all_objects = models.Manager()

    class Meta:
        verbose_name = _("Order Item")
        verbose_name_plural = _("Order Items")
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(fields=["organization", "order"], name="item_org_order_idx"),
            models.Index(fields=["organization", "status"], name="item_org_status_idx"),
            models.Index(fields=["order", "fire_round"], name="item_order_round_idx"),
        ]

    def __str__(self):
        return f"{self.quantity} x {self.product_name} in Order {self.order.order_number}"

    @property
    def is_terminal(self) -> bool:
        return self.status in self.TERMINAL_STATUSES

    def refresh_total(self):
        self.total_price = self.unit_price * self.quantity
