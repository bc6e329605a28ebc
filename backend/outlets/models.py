import uuid
from decimal import Decimal

from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.utils.translation import gettext_lazy as _

from .managers import OrganizationManager


class Organization(models.Model):
    """
    Root entity for multi-tenancy: one hotel or restaurant group.
    Every order, table and payment row belongs to exactly one organization.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255)
    slug = models.SlugField(unique=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name


class Outlet(models.Model):
    """
    A sales point (restaurant, bar, room service desk) owning its own tables.
    Carries the rates and currency the pricing engine applies to its orders.
    """

    class OutletType(models.TextChoices):
        RESTAURANT = "restaurant", _("Restaurant")
        BAR = "bar", _("Bar")
        CAFE = "cafe", _("Cafe")
        ROOM_SERVICE = "room_service", _("Room Service")
        POOL_BAR = "pool_bar", _("Pool Bar")

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    organization = models.ForeignKey(
        Organization, on_delete=models.CASCADE, related_name="outlets"
    )
    name = models.CharField(max_length=255)
    code = models.CharField(max_length=20)
    outlet_type = models.CharField(
        max_length=20, choices=OutletType.choices, default=OutletType.RESTAURANT
    )
    currency = models.CharField(
        max_length=3, default="XOF", help_text=_("ISO 4217 code used for rounding")
    )
    service_charge_rate = models.DecimalField(
        max_digits=5,
        decimal_places=4,
        default=Decimal("0"),
        validators=[MinValueValidator(Decimal("0")), MaxValueValidator(Decimal("1"))],
        help_text=_("Fraction applied after discount, e.g. 0.10 for 10%"),
    )
    tax_rate = models.DecimalField(
        max_digits=5,
        decimal_places=4,
        default=Decimal("0"),
        validators=[MinValueValidator(Decimal("0")), MaxValueValidator(Decimal("1"))],
        help_text=_("Fraction levied on the service-inclusive amount, e.g. 0.18"),
    )
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = OrganizationManager()
    all_objects = models.Manager()

    class Meta:
        ordering = ["name"]
        unique_together = ("organization", "code")

    def __str__(self):
        return f"{self.name} ({self.code})"
