from django.contrib import admin

from apps.delivery.models import DeliveryZone


@admin.register(DeliveryZone)
class DeliveryZoneAdmin(admin.ModelAdmin):
    list_display = ("name", "delivery_fee", "free_delivery_threshold", "estimated_days", "is_active")
    list_filter = ("is_active",)
    search_fields = ("name",)
