from django.conf import settings
from rest_framework import generics, status
from rest_framework.response import Response

from apps.audit.services import record_audit
from apps.common.permissions import RolePermission
from apps.currency.models import CurrencyRate
from apps.currency.serializers import CurrencyRateSerializer, SetRateSerializer
from apps.currency.services import set_rate


class CurrencyRateListView(generics.ListAPIView):
    serializer_class = CurrencyRateSerializer
    permission_classes = [RolePermission]
    pagination_class = None
    capability_map = {
        "get": ["currency.view"],
        "post": ["currency.manage"],
    }

    def get_queryset(self):
        queryset = CurrencyRate.objects.all()
        base = self.request.query_params.get("base")
        if base:
            queryset = queryset.filter(base_currency=base.strip().upper())
        return queryset

    def post(self, request, *args, **kwargs):
        serializer = SetRateSerializer(data=request.data, context={"base_currency": settings.BASE_CURRENCY})
        serializer.is_valid(raise_exception=True)
        row = set_rate(**serializer.validated_data)
        record_audit(
            actor=request.user,
            action="currency.rate.set",
            entity_type="currency_rate",
            entity_id=row.id,
            payload={"pair": f"{row.base_currency}/{row.target_currency}", "rate": str(row.rate)},
        )
        return Response(CurrencyRateSerializer(row).data, status=status.HTTP_201_CREATED)
