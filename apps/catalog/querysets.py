from decimal import Decimal

from django.conf import settings
from django.db.models import CharField, Case, DecimalField, F, Value, When
from django.db.models.fields.json import KT
from django.db.models.functions import Cast, Coalesce

from apps.catalog.models import StockStatus


QTY_FIELD = DecimalField(max_digits=12, decimal_places=3)


def with_stock_metrics(queryset):
    default_min = Value(Decimal(settings.INVENTORY_DEFAULT_MIN_STOCK), output_field=QTY_FIELD)
    return queryset.annotate(
        effective_min_stock=Coalesce(Cast(KT("meta__min_stock"), output_field=QTY_FIELD), default_min),
    ).annotate(
        stock_state=Case(
            When(stock__lte=0, then=Value(StockStatus.OUT)),
            When(stock__lte=F("effective_min_stock"), then=Value(StockStatus.LOW)),
            default=Value(StockStatus.NORMAL),
            output_field=CharField(),
        )
    )


def low_stock(queryset):
    return with_stock_metrics(queryset).filter(stock_state=StockStatus.LOW).order_by("stock", "name")


def out_of_stock(queryset):
    return with_stock_metrics(queryset).filter(stock_state=StockStatus.OUT).order_by("name")
