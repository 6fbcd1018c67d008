from decimal import Decimal

from rest_framework import serializers

from apps.delivery.models import DeliveryZone


class DeliveryZoneSerializer(serializers.ModelSerializer):
    class Meta:
        model = DeliveryZone
        fields = [
            "id",
            "name",
            "suburbs",
            "delivery_fee",
            "free_delivery_threshold",
            "estimated_days",
            "is_active",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "created_at", "updated_at"]

    def validate_suburbs(self, value):
        if not isinstance(value, list) or not all(isinstance(item, str) and item.strip() for item in value):
            raise serializers.ValidationError("Provide a list of suburb names.")
        return [" ".join(item.split()) for item in value]

    def validate_delivery_fee(self, value):
        if value < 0:
            raise serializers.ValidationError("Delivery fee cannot be negative.")
        return value


class DeliveryZoneSummarySerializer(serializers.ModelSerializer):
    class Meta:
        model = DeliveryZone
        fields = ["id", "name", "delivery_fee", "free_delivery_threshold", "estimated_days"]


class AddressSerializer(serializers.Serializer):
    suburb = serializers.CharField(max_length=120)
    postcode = serializers.CharField(max_length=10, required=False, allow_blank=True)


class FeeRequestSerializer(AddressSerializer):
    subtotal = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0"))


class DeliveryQuoteSerializer(serializers.Serializer):
    zone = DeliveryZoneSummarySerializer()
    fee = serializers.DecimalField(max_digits=12, decimal_places=2)
    is_free = serializers.BooleanField()
    estimated_days = serializers.IntegerField()
    amount_to_free_delivery = serializers.DecimalField(max_digits=12, decimal_places=2, allow_null=True)
    message = serializers.SerializerMethodField()

    def get_message(self, quote):
        if quote.is_free:
            return "You qualify for FREE delivery!"
        if quote.amount_to_free_delivery is not None:
            return f"Add ${quote.amount_to_free_delivery} more for FREE delivery!"
        return ""
