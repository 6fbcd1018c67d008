from django.urls import path
from rest_framework.routers import DefaultRouter

from apps.orders.views import OrderViewSet, PaymentViewSet, PromotionViewSet, ValidatePromoView

router = DefaultRouter()
router.register("orders", OrderViewSet, basename="order")
router.register("payments", PaymentViewSet, basename="payment")
router.register("promotions", PromotionViewSet, basename="promotion")

urlpatterns = [
    path("checkout/validate-promo/", ValidatePromoView.as_view(), name="checkout-validate-promo"),
]
urlpatterns += router.urls
