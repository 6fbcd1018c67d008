from django.urls import path

from apps.currency.views import CurrencyRateListView

urlpatterns = [
    path("currency-rates/", CurrencyRateListView.as_view(), name="currency-rates"),
]
