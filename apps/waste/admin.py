from django.contrib import admin

from apps.waste.models import WasteLog


@admin.register(WasteLog)
class WasteLogAdmin(admin.ModelAdmin):
    list_display = ("product", "quantity", "reason", "total_cost", "logged_by", "approved_at", "rejected_at", "created_at")
    list_filter = ("reason",)
    search_fields = ("product__sku", "product__name", "notes")
    readonly_fields = ("approved_at", "approved_by", "rejected_at", "rejected_by", "rejection_notes")
