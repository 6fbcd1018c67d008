from rest_framework import serializers

from apps.catalog.models import Product


class ProductSerializer(serializers.ModelSerializer):
    current_price = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)
    min_stock = serializers.IntegerField(read_only=True)
    stock_status = serializers.CharField(read_only=True)

    class Meta:
        model = Product
        fields = [
            "id",
            "sku",
            "name",
            "unit",
            "price_aud",
            "sale_price_aud",
            "current_price",
            "stock",
            "min_stock",
            "stock_status",
            "is_active",
            "meta",
            "updated_at",
        ]
        read_only_fields = fields


class ProductStockSerializer(serializers.ModelSerializer):
    min_stock = serializers.IntegerField(read_only=True)
    stock_status = serializers.CharField(read_only=True)

    class Meta:
        model = Product
        fields = ["id", "sku", "name", "unit", "stock", "min_stock", "stock_status"]
        read_only_fields = fields
