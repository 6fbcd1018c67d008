from datetime import timedelta

from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework import generics, status, viewsets
from rest_framework.response import Response

from apps.audit.services import record_audit
from apps.catalog.models import Product
from apps.catalog.querysets import with_stock_metrics
from apps.catalog.serializers import ProductStockSerializer
from apps.common.params import date_param, pk_param
from apps.common.permissions import RolePermission
from apps.inventory.models import InventoryLog, MovementType
from apps.inventory.serializers import (
    AdjustStockSerializer,
    InventoryLogSerializer,
    MinStockSerializer,
    ReceiveStockSerializer,
)
from apps.inventory.services import adjust_to, apply_movement, movement_report, set_min_stock, stock_alerts


class InventoryLogViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = InventoryLog.objects.select_related("product", "created_by")
    serializer_class = InventoryLogSerializer
    permission_classes = [RolePermission]
    capability_map = {
        "list": ["inventory.view"],
        "retrieve": ["inventory.view"],
    }

    def get_queryset(self):
        queryset = super().get_queryset()
        params = self.request.query_params
        product_id = pk_param(params, "product", Product)
        if product_id:
            queryset = queryset.filter(product_id=product_id)
        if params.get("type"):
            queryset = queryset.filter(movement_type=params["type"])
        if params.get("reference_type"):
            queryset = queryset.filter(reference_type=params["reference_type"])
        if params.get("reference_id"):
            queryset = queryset.filter(reference_id=params["reference_id"])

        date_from = date_param(params, "date_from")
        date_to = date_param(params, "date_to")
        if date_from:
            queryset = queryset.filter(created_at__date__gte=date_from)
        if date_to:
            queryset = queryset.filter(created_at__date__lte=date_to)
        return queryset


class InventoryStockView(generics.ListAPIView):
    serializer_class = ProductStockSerializer
    permission_classes = [RolePermission]
    capability_map = {"get": ["inventory.view"]}

    def get_queryset(self):
        queryset = with_stock_metrics(Product.objects.filter(is_active=True))
        product_id = pk_param(self.request.query_params, "product", Product)
        if product_id:
            queryset = queryset.filter(pk=product_id)
        stock_status = self.request.query_params.get("status")
        if stock_status:
            queryset = queryset.filter(stock_state=stock_status)
        return queryset.order_by("name")


class ReceiveStockView(generics.GenericAPIView):
    serializer_class = ReceiveStockSerializer
    permission_classes = [RolePermission]
    capability_map = {"post": ["inventory.manage"]}

    def post(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        product = serializer.validated_data["product"]
        log = apply_movement(
            product=product,
            movement_type=MovementType.ADDITION,
            quantity=serializer.validated_data["quantity"],
            reason=serializer.build_reason(),
            actor=request.user,
        )
        record_audit(
            actor=request.user,
            action="inventory.receive",
            entity_type="inventory_log",
            entity_id=log.id,
            payload={"product_id": str(product.id), "quantity": str(log.quantity), "stock_after": str(log.stock_after)},
        )
        return Response(InventoryLogSerializer(log).data, status=status.HTTP_201_CREATED)


class AdjustStockView(generics.GenericAPIView):
    serializer_class = AdjustStockSerializer
    permission_classes = [RolePermission]
    capability_map = {"post": ["inventory.manage"]}

    def post(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        product = serializer.validated_data["product"]
        try:
            log = adjust_to(
                product=product,
                target=serializer.validated_data["new_quantity"],
                reason=serializer.build_reason(),
                actor=request.user,
            )
        except ValueError as exc:
            return Response({"code": "invalid_adjustment", "detail": str(exc), "fields": {}}, status=400)

        record_audit(
            actor=request.user,
            action="inventory.adjust",
            entity_type="inventory_log",
            entity_id=log.id,
            payload={
                "product_id": str(product.id),
                "stock_before": str(log.stock_before),
                "stock_after": str(log.stock_after),
                "reason": log.reason,
            },
        )
        return Response(InventoryLogSerializer(log).data, status=status.HTTP_201_CREATED)


class MinStockView(generics.GenericAPIView):
    serializer_class = MinStockSerializer
    permission_classes = [RolePermission]
    capability_map = {"post": ["inventory.manage"]}

    def post(self, request, product_id, *args, **kwargs):
        product = get_object_or_404(Product, pk=product_id)
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        previous = set_min_stock(product=product, min_stock=serializer.validated_data["min_stock"])
        record_audit(
            actor=request.user,
            action="inventory.min_stock.update",
            entity_type="product",
            entity_id=product.id,
            payload={"previous": previous, "min_stock": product.min_stock},
        )
        return Response(ProductStockSerializer(product).data)


class StockAlertsView(generics.GenericAPIView):
    permission_classes = [RolePermission]
    capability_map = {"get": ["inventory.view"]}

    def get(self, request, *args, **kwargs):
        alerts = stock_alerts()
        return Response(
            {
                "low_stock": ProductStockSerializer(alerts["low_stock"], many=True).data,
                "out_of_stock": ProductStockSerializer(alerts["out_of_stock"], many=True).data,
                "counts": {
                    "low_stock": len(alerts["low_stock"]),
                    "out_of_stock": len(alerts["out_of_stock"]),
                },
            }
        )


class InventoryReportView(generics.GenericAPIView):
    permission_classes = [RolePermission]
    capability_map = {"get": ["inventory.view"]}

    def get(self, request, *args, **kwargs):
        try:
            days = max(int(request.query_params.get("days", 30)), 1)
        except ValueError:
            days = 30
        since = timezone.now() - timedelta(days=days)
        report = movement_report(InventoryLog.objects.filter(created_at__gte=since))
        return Response(
            {
                "days": days,
                "movements": {key: {"count": value["count"], "total_quantity": str(value["total_quantity"])} for key, value in report.items()},
            }
        )
