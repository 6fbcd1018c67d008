from django.contrib import admin

from apps.currency.models import CurrencyRate


@admin.register(CurrencyRate)
class CurrencyRateAdmin(admin.ModelAdmin):
    list_display = ("base_currency", "target_currency", "rate", "fetched_at")
    list_filter = ("base_currency",)
