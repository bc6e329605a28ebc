from rest_framework import serializers

from .models import Order


class ProductInputSerializer(serializers.Serializer):
    """The product fields a line snapshots when it is added."""

    id = serializers.CharField(max_length=64)
    name = serializers.CharField(max_length=200)
    code = serializers.CharField(max_length=64, required=False, allow_blank=True, default="")
    price = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=0)


class CreateOrderSerializer(serializers.Serializer):
    customer_count = serializers.IntegerField(min_value=1, default=1)
    table_id = serializers.UUIDField(required=False, allow_null=True)
    order_type = serializers.ChoiceField(choices=Order.OrderType.choices, required=False, allow_null=True)
    server_id = serializers.UUIDField(required=False, allow_null=True)
    guest_id = serializers.CharField(max_length=64, required=False, allow_blank=True, allow_null=True)
    folio_id = serializers.CharField(max_length=64, required=False, allow_blank=True, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, default="")

    def validate(self, data):
        """Room service orders bill to a folio, so they need one."""
        if data.get("order_type") == Order.OrderType.ROOM_SERVICE and not data.get("folio_id"):
            raise serializers.ValidationError("Room service orders need a guest folio.")
        return data


class AddItemSerializer(serializers.Serializer):
    product = ProductInputSerializer()
    quantity = serializers.IntegerField(min_value=1, default=1)
    special_instructions = serializers.CharField(required=False, allow_blank=True, default="")


class UpdateQuantitySerializer(serializers.Serializer):
    # Zero or less removes the line
    quantity = serializers.IntegerField()


class ReasonSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=255)

    def validate_reason(self, value):
        if not value.strip():
            raise serializers.ValidationError("A reason is required.")
        return value.strip()


class DiscountSerializer(serializers.Serializer):
    discount_type = serializers.ChoiceField(choices=Order.DiscountType.choices)
    value = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=0, default=0)

    def validate(self, data):
        if data["discount_type"] == Order.DiscountType.NONE:
            data["value"] = 0
        return data


class CustomerCountSerializer(serializers.Serializer):
    customer_count = serializers.IntegerField(min_value=1)
