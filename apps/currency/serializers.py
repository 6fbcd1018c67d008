from decimal import Decimal

from rest_framework import serializers

from apps.currency.models import CurrencyRate


class CurrencyRateSerializer(serializers.ModelSerializer):
    is_stale = serializers.SerializerMethodField()

    class Meta:
        model = CurrencyRate
        fields = ["id", "base_currency", "target_currency", "rate", "fetched_at", "is_stale"]
        read_only_fields = fields

    def get_is_stale(self, obj):
        return obj.is_stale()


class SetRateSerializer(serializers.Serializer):
    base_currency = serializers.CharField(max_length=3, required=False)
    target_currency = serializers.CharField(max_length=3)
    rate = serializers.DecimalField(max_digits=10, decimal_places=6, min_value=Decimal("0.000001"))

    def validate(self, attrs):
        base = attrs.get("base_currency") or self.context["base_currency"]
        attrs["base_currency"] = base.strip().upper()
        attrs["target_currency"] = attrs["target_currency"].strip().upper()
        if attrs["base_currency"] == attrs["target_currency"]:
            raise serializers.ValidationError({"target_currency": "Target currency must differ from the base currency."})
        return attrs
