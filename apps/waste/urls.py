from rest_framework.routers import DefaultRouter

from apps.waste.views import WasteLogViewSet

router = DefaultRouter()
router.register("waste", WasteLogViewSet, basename="waste")

urlpatterns = router.urls
