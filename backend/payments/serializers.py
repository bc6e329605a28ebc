from rest_framework import serializers

from .models import Payment, PaymentMethod


class TenderSerializer(serializers.Serializer):
    """
    One instrument as entered at the register. amount is the share of the
    bill (optional for a single payment); amount_tendered is what was handed
    over (required for cash).
    """

    method = serializers.ChoiceField(choices=PaymentMethod.choices)
    amount = serializers.DecimalField(max_digits=14, decimal_places=2, required=False, allow_null=True)
    amount_tendered = serializers.DecimalField(max_digits=14, decimal_places=2, required=False, allow_null=True)
    reference = serializers.CharField(required=False, allow_blank=True, default="", max_length=255)

    def validate_amount(self, value):
        if value is not None and value <= 0:
            raise serializers.ValidationError("Amount must be a positive value.")
        return value

    def validate_amount_tendered(self, value):
        if value is not None and value < 0:
            raise serializers.ValidationError("Amount tendered cannot be negative.")
        return value

    def validate_reference(self, value):
        return value.strip()


class SettlePaymentSerializer(serializers.Serializer):
    """A checkout request; the register supplies its own attempt token when none is given."""

    attempt_token = serializers.CharField(max_length=64, required=False, allow_null=True)
    mode = serializers.ChoiceField(choices=Payment.PaymentMode.choices, required=False)
    tenders = TenderSerializer(many=True)

    def validate_tenders(self, value):
        if not value:
            raise serializers.ValidationError("Add at least one payment.")
        return value

    def validate(self, data):
        """A split needs an amount on every instrument."""
        mode = data.get("mode")
        if mode == Payment.PaymentMode.SPLIT or len(data["tenders"]) > 1:
            if any(t.get("amount") is None for t in data["tenders"]):
                raise serializers.ValidationError("Each split payment needs an amount.")
        return data


class EvenSplitSerializer(serializers.Serializer):
    """Number of guests sharing a bill, for the split-bill suggestion."""

    parts = serializers.IntegerField(min_value=1, max_value=100)
