from decimal import Decimal

from rest_framework import serializers

from apps.catalog.models import Product
from apps.waste.models import WasteLog, WasteReason


class WasteLogSerializer(serializers.ModelSerializer):
    product_sku = serializers.CharField(source="product.sku", read_only=True)
    product_name = serializers.CharField(source="product.name", read_only=True)
    logged_by_username = serializers.CharField(source="logged_by.username", read_only=True)
    status = serializers.CharField(read_only=True)

    class Meta:
        model = WasteLog
        fields = [
            "id",
            "product",
            "product_sku",
            "product_name",
            "quantity",
            "reason",
            "notes",
            "unit_cost",
            "total_cost",
            "status",
            "logged_by",
            "logged_by_username",
            "approved_at",
            "approved_by",
            "rejected_at",
            "rejected_by",
            "rejection_notes",
            "created_at",
        ]
        read_only_fields = fields


class SubmitWasteSerializer(serializers.Serializer):
    product = serializers.PrimaryKeyRelatedField(queryset=Product.objects.all())
    quantity = serializers.DecimalField(max_digits=12, decimal_places=3, min_value=Decimal("0.001"))
    reason = serializers.ChoiceField(choices=WasteReason.choices)
    notes = serializers.CharField(required=False, allow_blank=True, max_length=500)


class DecideWasteSerializer(serializers.Serializer):
    approved = serializers.BooleanField()
    notes = serializers.CharField(required=False, allow_blank=True, max_length=500)
