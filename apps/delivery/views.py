from rest_framework import generics, viewsets
from rest_framework.response import Response

from apps.audit.services import record_audit
from apps.common.permissions import RolePermission
from apps.delivery.models import DeliveryZone
from apps.delivery.serializers import (
    AddressSerializer,
    DeliveryQuoteSerializer,
    DeliveryZoneSerializer,
    DeliveryZoneSummarySerializer,
    FeeRequestSerializer,
)
from apps.delivery.services import find_zone_for_suburb, quote_delivery


class DeliveryZoneViewSet(viewsets.ModelViewSet):
    queryset = DeliveryZone.objects.all()
    serializer_class = DeliveryZoneSerializer
    permission_classes = [RolePermission]
    capability_map = {
        "list": ["delivery.view"],
        "retrieve": ["delivery.view"],
        "create": ["delivery.manage"],
        "update": ["delivery.manage"],
        "partial_update": ["delivery.manage"],
        "destroy": ["delivery.manage"],
    }

    def get_queryset(self):
        queryset = super().get_queryset()
        active = self.request.query_params.get("active")
        if active is not None:
            queryset = queryset.filter(is_active=active.strip().lower() in {"1", "true", "yes"})
        return queryset

    def perform_create(self, serializer):
        zone = serializer.save()
        self._audit("delivery_zone.create", zone)

    def perform_update(self, serializer):
        zone = serializer.save()
        self._audit("delivery_zone.update", zone)

    def perform_destroy(self, instance):
        # Zones referenced by orders are deactivated instead of deleted.
        if instance.orders.exists():
            instance.is_active = False
            instance.save(update_fields=["is_active", "updated_at"])
            self._audit("delivery_zone.deactivate", instance)
            return
        self._audit("delivery_zone.delete", instance)
        instance.delete()

    def _audit(self, action, zone):
        record_audit(
            actor=self.request.user,
            action=action,
            entity_type="delivery_zone",
            entity_id=zone.id,
            payload={"name": zone.name, "delivery_fee": str(zone.delivery_fee), "is_active": zone.is_active},
        )


class ValidateAddressView(generics.GenericAPIView):
    serializer_class = AddressSerializer
    permission_classes = [RolePermission]
    capability_map = {"post": ["delivery.view"]}

    def post(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        zone = find_zone_for_suburb(serializer.validated_data["suburb"])
        if zone is None:
            return Response(
                {
                    "delivers": False,
                    "zone": None,
                    "detail": "Sorry, we don't currently deliver to your area.",
                }
            )
        return Response(
            {
                "delivers": True,
                "zone": DeliveryZoneSummarySerializer(zone).data,
                "detail": "Great news! We deliver to your area.",
            }
        )


class CalculateFeeView(generics.GenericAPIView):
    serializer_class = FeeRequestSerializer
    permission_classes = [RolePermission]
    capability_map = {"post": ["delivery.view"]}

    def post(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        quote = quote_delivery(serializer.validated_data["suburb"], serializer.validated_data["subtotal"])
        return Response(DeliveryQuoteSerializer(quote).data)
