import uuid
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models

# Documented keys of Product.meta and the type each must hold.
META_KEYS = {
    "min_stock": int,
}


class ProductUnit(models.TextChoices):
    KG = "kg", "Kilogram"
    PIECE = "piece", "Piece"
    PACK = "pack", "Pack"


class StockStatus(models.TextChoices):
    NORMAL = "normal", "Normal"
    LOW = "low", "Low"
    OUT = "out", "Out"


class Product(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    sku = models.CharField(max_length=64, unique=True, db_index=True)
    name = models.CharField(max_length=255, db_index=True)
    unit = models.CharField(max_length=8, choices=ProductUnit.choices, default=ProductUnit.KG)
    price_aud = models.DecimalField(max_digits=12, decimal_places=2)
    sale_price_aud = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    # Cached projection of the latest InventoryLog.stock_after; only apps.inventory.services writes it.
    stock = models.DecimalField(max_digits=12, decimal_places=3, default=Decimal("0"), editable=False)
    is_active = models.BooleanField(default=True, db_index=True)
    meta = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]
        constraints = [
            models.CheckConstraint(check=models.Q(stock__gte=0), name="product_stock_gte_zero"),
            models.CheckConstraint(check=models.Q(price_aud__gte=0), name="product_price_gte_zero"),
        ]

    def clean(self):
        meta = self.meta or {}
        if not isinstance(meta, dict):
            raise ValidationError({"meta": "meta must be an object"})
        for key, expected in META_KEYS.items():
            if key in meta and meta[key] is not None:
                value = meta[key]
                if isinstance(value, bool) or not isinstance(value, expected):
                    raise ValidationError({"meta": f"{key} must be of type {expected.__name__}"})
                if key == "min_stock" and value < 0:
                    raise ValidationError({"meta": "min_stock cannot be negative"})

    @property
    def current_price(self):
        if self.sale_price_aud is not None and self.sale_price_aud < self.price_aud:
            return self.sale_price_aud
        return self.price_aud

    @property
    def min_stock(self):
        value = (self.meta or {}).get("min_stock")
        if value is None:
            return settings.INVENTORY_DEFAULT_MIN_STOCK
        return value

    @property
    def stock_status(self):
        return stock_status_for(self.stock, self.min_stock)

    def __str__(self):
        return f"{self.sku} - {self.name}"


def stock_status_for(stock, min_stock):
    if stock <= 0:
        return StockStatus.OUT
    if stock <= min_stock:
        return StockStatus.LOW
    return StockStatus.NORMAL
