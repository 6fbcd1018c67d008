from django.urls import path

from apps.health.views import LiveView, ReadyView

urlpatterns = [
    path("", LiveView.as_view(), name="health-live"),
    path("ready/", ReadyView.as_view(), name="health-ready"),
]
