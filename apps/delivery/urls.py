from django.urls import path
from rest_framework.routers import DefaultRouter

from apps.delivery.views import CalculateFeeView, DeliveryZoneViewSet, ValidateAddressView

router = DefaultRouter()
router.register("delivery-zones", DeliveryZoneViewSet, basename="delivery-zone")

urlpatterns = [
    path("delivery/validate-address/", ValidateAddressView.as_view(), name="delivery-validate-address"),
    path("delivery/calculate-fee/", CalculateFeeView.as_view(), name="delivery-calculate-fee"),
]
urlpatterns += router.urls
