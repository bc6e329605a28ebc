import uuid
from decimal import Decimal

from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from outlets.managers import OrganizationManager


class PaymentMethod(models.TextChoices):
    CASH = "cash", _("Cash")
    CARD = "card", _("Card")
    MOBILE_MONEY = "mobile_money", _("Mobile Money")
    ROOM_CHARGE = "room_charge", _("Room Charge")


class Payment(models.Model):
    """
    One settlement attempt for an Order, keyed by (order, attempt_token).
    Acts as the container for the Settlements recorded under it, so a
    resubmitted attempt resumes instead of charging twice.
    """

    class PaymentMode(models.TextChoices):
        SINGLE = "single", _("Single")
        SPLIT = "split", _("Split")
        ROOM_CHARGE = "room_charge", _("Room Charge")

    class PaymentStatus(models.TextChoices):
        PENDING = "pending", _("Pending")
        AWAITING_CHANGE = "awaiting_change", _("Awaiting Change")
        COMPLETED = "completed", _("Completed")
        FAILED = "failed", _("Failed")

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    organization = models.ForeignKey(
        "outlets.Organization", on_delete=models.CASCADE, related_name="payments"
    )
    order = models.ForeignKey(
        "orders.Order", on_delete=models.PROTECT, related_name="payments"
    )
    attempt_token = models.CharField(
        max_length=64, help_text=_("Caller-supplied key that makes resubmission idempotent")
    )
    mode = models.CharField(max_length=20, choices=PaymentMode.choices, default=PaymentMode.SINGLE)
    status = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
        help_text=_("The current status of the payment."),
    )
    currency = models.CharField(max_length=3, default="XOF")
    amount_due = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        help_text=_("Order total at the time the attempt started."),
    )
    amount_tendered = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0"))

    # --- Change management ---
    change_due = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0"))
    change_breakdown = models.JSONField(blank=True, null=True)
    change_unrepresentable = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        default=Decimal("0"),
        help_text=_("Part of the change the note/coin ladder cannot express"),
    )
    change_returned_at = models.DateTimeField(null=True, blank=True)

    failure_reason = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(default=timezone.now, editable=False)
    updated_at = models.DateTimeField(auto_now=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    objects = OrganizationManager()
    all_objects = models.Manager()

    class Meta:
        ordering = ["-created_at"]
        verbose_name = _("Payment")
        verbose_name_plural = _("Payments")
        constraints = [
            models.UniqueConstraint(fields=["order", "attempt_token"], name="unique_payment_attempt"),
        ]
        indexes = [
            models.Index(fields=["organization", "status"], name="payment_org_status_idx"),
            models.Index(fields=["order", "status"], name="payment_order_status_idx"),
        ]

    def __str__(self):
        return f"Payment {self.id} for Order {self.order_id} - {self.status}"

    @property
    def is_settled(self) -> bool:
        return self.status in (self.PaymentStatus.AWAITING_CHANGE, self.PaymentStatus.COMPLETED)


class Settlement(models.Model):
    """
    One payment instrument's contribution toward closing an order.
    Append-only: the services never update or delete a settlement.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    organization = models.ForeignKey(
        "outlets.Organization", on_delete=models.CASCADE, related_name="settlements"
    )
    payment = models.ForeignKey(Payment, on_delete=models.PROTECT, related_name="settlements")
    order = models.ForeignKey("orders.Order", on_delete=models.PROTECT, related_name="settlements")
    position = models.PositiveIntegerField(help_text=_("Index of the instrument within its attempt"))
    method = models.CharField(max_length=20, choices=PaymentMethod.choices)
    amount = models.DecimalField(max_digits=14, decimal_places=2)
    amount_tendered = models.DecimalField(max_digits=14, decimal_places=2)
    change = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0"))

    reference = models.CharField(
        max_length=255, blank=True, help_text=_("Mobile money transaction reference, folio id...")
    )
    external_charge_id = models.CharField(
        max_length=255,
        blank=True,
        help_text=_("Charge id returned by the folio service for room charges"),
    )
    created_at = models.DateTimeField(default=timezone.now, editable=False)

    objects = OrganizationManager()
    all_objects = models.Manager()

    class Meta:
        ordering = ["created_at", "position"]
        verbose_name = _("Settlement")
        verbose_name_plural = _("Settlements")
        constraints = [
            models.UniqueConstraint(fields=["payment", "position"], name="unique_settlement_position"),
        ]
        indexes = [
            models.Index(fields=["organization", "method"], name="settlement_org_method_idx"),
            models.Index(fields=["order"], name="settlement_order_idx"),
        ]

    def __str__(self):
        return f"Settlement {self.position} ({self.method}) {self.amount} for Order {self.order_id}"
