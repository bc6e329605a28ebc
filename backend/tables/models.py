import uuid

from django.core.validators import MinValueValidator
from django.db import models
from django.utils.translation import gettext_lazy as _

from outlets.managers import OrganizationManager


class Server(models.Model):
    """A member of the floor staff who can be assigned tables."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    organization = models.ForeignKey(
        "outlets.Organization", on_delete=models.CASCADE, related_name="servers"
    )
    outlet = models.ForeignKey(
        "outlets.Outlet", on_delete=models.CASCADE, related_name="servers"
    )
    name = models.CharField(max_length=120)
    zone = models.CharField(max_length=50, blank=True, help_text=_("Home zone; empty means any"))
    max_tables = models.PositiveIntegerField(
        default=4,
        validators=[MinValueValidator(1)],
        help_text=_("Maximum number of tables this server can run at once"),
    )
    is_on_shift = models.BooleanField(default=True)

    objects = OrganizationManager()
    all_objects = models.Manager()

    class Meta:
        ordering = ["name"]
        indexes = [
            models.Index(fields=["organization", "outlet", "is_on_shift"], name="tables_server_shift_idx"),
        ]

    def __str__(self):
        return self.name


class Table(models.Model):
    """
    A physical seating unit. Orders reference tables; a table never stores
    anything about the orders seated at it.

    Merging marks one table as primary (combined_capacity holds the summed
    capacity) and points every other member at it through merged_into.
    """

    class TableStatus(models.TextChoices):
        AVAILABLE = "available", _("Available")
        OCCUPIED = "occupied", _("Occupied")
        RESERVED = "reserved", _("Reserved")
        CLEANING = "cleaning", _("Cleaning")
        OUT_OF_ORDER = "out_of_order", _("Out of Order")

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    organization = models.ForeignKey(
        "outlets.Organization", on_delete=models.CASCADE, related_name="tables"
    )
    outlet = models.ForeignKey(
        "outlets.Outlet", on_delete=models.CASCADE, related_name="tables"
    )
    number = models.CharField(max_length=20)
    capacity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    zone = models.CharField(max_length=50, blank=True)
    status = models.CharField(
        max_length=20, choices=TableStatus.choices, default=TableStatus.AVAILABLE
    )
    server = models.ForeignKey(
        Server,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="tables",
    )
    merged_into = models.ForeignKey(
        "self",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="merged_members",
    )
    combined_capacity = models.PositiveIntegerField(
        null=True, blank=True, help_text=_("Summed capacity while this table is a merge primary")
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = OrganizationManager()
    all_objects = models.Manager()

    class Meta:
        ordering = ["number"]
        unique_together = ("outlet", "number")
        indexes = [
            models.Index(fields=["organization", "outlet", "status"], name="tables_table_status_idx"),
        ]

    def __str__(self):
        return f"Table {self.number}"

    @property
    def effective_capacity(self) -> int:
        return self.combined_capacity or self.capacity

    @property
    def is_merge_member(self) -> bool:
        return self.merged_into_id is not None

    @property
    def is_merge_primary(self) -> bool:
        return self.combined_capacity is not None
