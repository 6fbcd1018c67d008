from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from apps.catalog.models import Product
from apps.common.params import date_param, pk_param
from apps.common.permissions import RolePermission
from apps.waste.models import WasteLog
from apps.waste.serializers import DecideWasteSerializer, SubmitWasteSerializer, WasteLogSerializer
from apps.waste.services import decide_waste, submit_waste, waste_summary


class WasteLogViewSet(mixins.CreateModelMixin, viewsets.ReadOnlyModelViewSet):
    queryset = WasteLog.objects.select_related("product", "logged_by", "approved_by", "rejected_by")
    serializer_class = WasteLogSerializer
    permission_classes = [RolePermission]
    capability_map = {
        "list": ["waste.view"],
        "retrieve": ["waste.view"],
        "create": ["waste.submit"],
        "decide": ["waste.decide"],
        "summary": ["waste.view"],
    }

    def get_queryset(self):
        queryset = super().get_queryset()
        params = self.request.query_params
        if params.get("status"):
            queryset = queryset.with_status(params["status"])
        if params.get("reason"):
            queryset = queryset.filter(reason=params["reason"])
        product_id = pk_param(params, "product", Product)
        if product_id:
            queryset = queryset.filter(product_id=product_id)

        start = date_param(params, "start_date")
        end = date_param(params, "end_date")
        if start:
            queryset = queryset.filter(created_at__date__gte=start)
        if end:
            queryset = queryset.filter(created_at__date__lte=end)
        return queryset

    def create(self, request, *args, **kwargs):
        serializer = SubmitWasteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        entry = submit_waste(actor=request.user, **serializer.validated_data)
        return Response(WasteLogSerializer(entry).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"])
    def decide(self, request, pk=None):
        entry = self.get_object()
        serializer = DecideWasteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        entry = decide_waste(
            entry=entry,
            approve=serializer.validated_data["approved"],
            actor=request.user,
            notes=serializer.validated_data.get("notes", ""),
        )
        return Response(WasteLogSerializer(entry).data, status=status.HTTP_200_OK)

    @action(detail=False, methods=["get"])
    def summary(self, request):
        summary = waste_summary(self.get_queryset())
        return Response(_stringify(summary))


def _stringify(value):
    if isinstance(value, dict):
        return {key: _stringify(item) for key, item in value.items()}
    if isinstance(value, int):
        return value
    return str(value)
