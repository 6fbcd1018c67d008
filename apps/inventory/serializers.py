from decimal import Decimal

from rest_framework import serializers

from apps.catalog.models import Product
from apps.inventory.models import InventoryLog


class InventoryLogSerializer(serializers.ModelSerializer):
    product_sku = serializers.CharField(source="product.sku", read_only=True)
    product_name = serializers.CharField(source="product.name", read_only=True)
    created_by_username = serializers.CharField(source="created_by.username", read_only=True, default=None)

    class Meta:
        model = InventoryLog
        fields = [
            "id",
            "product",
            "product_sku",
            "product_name",
            "movement_type",
            "quantity",
            "stock_before",
            "stock_after",
            "reason",
            "reference_type",
            "reference_id",
            "created_by",
            "created_by_username",
            "created_at",
        ]
        read_only_fields = fields


class ReceiveStockSerializer(serializers.Serializer):
    product = serializers.PrimaryKeyRelatedField(queryset=Product.objects.all())
    quantity = serializers.DecimalField(max_digits=12, decimal_places=3, min_value=Decimal("0.001"))
    supplier = serializers.CharField(max_length=120, required=False, allow_blank=True)
    notes = serializers.CharField(max_length=255, required=False, allow_blank=True)

    def build_reason(self):
        supplier = self.validated_data.get("supplier")
        reason = f"Stock received from {supplier}" if supplier else "Stock received"
        notes = self.validated_data.get("notes")
        return f"{reason}: {notes}" if notes else reason


class AdjustStockSerializer(serializers.Serializer):
    product = serializers.PrimaryKeyRelatedField(queryset=Product.objects.all())
    new_quantity = serializers.DecimalField(max_digits=12, decimal_places=3, min_value=Decimal("0"))
    reason = serializers.CharField(max_length=200)
    notes = serializers.CharField(max_length=255, required=False, allow_blank=True)

    def build_reason(self):
        notes = self.validated_data.get("notes")
        reason = self.validated_data["reason"]
        return f"{reason}: {notes}" if notes else reason


class MinStockSerializer(serializers.Serializer):
    min_stock = serializers.IntegerField(min_value=0)
