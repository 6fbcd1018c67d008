from django.db.models import Q
from rest_framework import viewsets

from apps.catalog.models import Product
from apps.catalog.querysets import with_stock_metrics
from apps.catalog.serializers import ProductSerializer
from apps.common.permissions import RolePermission


class ProductViewSet(viewsets.ReadOnlyModelViewSet):
    serializer_class = ProductSerializer
    permission_classes = [RolePermission]
    capability_map = {
        "list": ["catalog.view"],
        "retrieve": ["catalog.view"],
    }

    def get_queryset(self):
        queryset = with_stock_metrics(Product.objects.all())
        query = self.request.query_params.get("q")
        if query:
            queryset = queryset.filter(Q(name__icontains=query) | Q(sku__icontains=query))

        stock_status = self.request.query_params.get("stock_status")
        if stock_status:
            queryset = queryset.filter(stock_state=stock_status.strip().lower())

        active = self.request.query_params.get("active")
        if active is not None:
            queryset = queryset.filter(is_active=active.strip().lower() in {"1", "true", "yes"})
        return queryset
