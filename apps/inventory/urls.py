from django.urls import path
from rest_framework.routers import DefaultRouter

from apps.inventory.views import (
    AdjustStockView,
    InventoryLogViewSet,
    InventoryReportView,
    InventoryStockView,
    MinStockView,
    ReceiveStockView,
    StockAlertsView,
)

router = DefaultRouter()
router.register("movements", InventoryLogViewSet, basename="inventory-movement")

urlpatterns = [
    path("stocks/", InventoryStockView.as_view(), name="inventory-stock"),
    path("receive/", ReceiveStockView.as_view(), name="inventory-receive"),
    path("adjust/", AdjustStockView.as_view(), name="inventory-adjust"),
    path("alerts/", StockAlertsView.as_view(), name="inventory-alerts"),
    path("report/", InventoryReportView.as_view(), name="inventory-report"),
    path("products/<uuid:product_id>/min-stock/", MinStockView.as_view(), name="inventory-min-stock"),
]
urlpatterns += router.urls
