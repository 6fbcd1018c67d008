from django.contrib import admin

from apps.catalog.models import Product


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("sku", "name", "unit", "price_aud", "sale_price_aud", "stock", "is_active")
    list_filter = ("is_active", "unit")
    search_fields = ("sku", "name")
    readonly_fields = ("stock", "created_at", "updated_at")
