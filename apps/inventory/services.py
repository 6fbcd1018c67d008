import logging
from decimal import Decimal, InvalidOperation

from django.conf import settings
from django.db import transaction
from django.db.models import Count, DecimalField, Sum
from django.db.models.functions import Coalesce
from django.utils import timezone

from apps.catalog.models import Product, StockStatus, stock_status_for
from apps.catalog.querysets import low_stock, out_of_stock
from apps.common.exceptions import InsufficientStock, StockConflict
from apps.inventory.models import InventoryLog, MovementType, ReferenceType
from apps.inventory.signals import stock_low, stock_out

logger = logging.getLogger(__name__)

QUANTITY_PLACES = Decimal("0.001")
DECREASING_TYPES = {MovementType.DEDUCTION, MovementType.WASTE}


def to_quantity(value):
    try:
        return Decimal(value).quantize(QUANTITY_PLACES)
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"Invalid quantity: {value!r}") from exc


def signed_delta(movement_type, quantity):
    """Turn a movement into the signed change it applies to stock.

    Additions, deductions and waste take a positive magnitude. Adjustments carry
    their direction in the sign of ``quantity``.
    """
    if movement_type == MovementType.ADJUSTMENT:
        if quantity == 0:
            raise ValueError("Adjustment quantity cannot be zero.")
        return quantity
    if quantity <= 0:
        raise ValueError("Quantity must be greater than 0.")
    if movement_type == MovementType.ADDITION:
        return quantity
    if movement_type in DECREASING_TYPES:
        return -quantity
    raise ValueError(f"Unknown movement type: {movement_type}")


def lock_products(product_ids):
    """Row-lock the given products in ascending primary-key order and return them by id."""
    locked = Product.objects.select_for_update().filter(pk__in=set(product_ids)).order_by("pk")
    return {product.pk: product for product in locked}


def apply_movement(
    *,
    product,
    movement_type,
    quantity,
    reason="",
    actor=None,
    reference_type=ReferenceType.MANUAL,
    reference_id="",
):
    """Apply one stock movement and write exactly one InventoryLog row.

    Raises InsufficientStock when the movement would take stock below zero and
    StockConflict when the cached stock keeps changing underneath the update.
    """
    delta = signed_delta(movement_type, to_quantity(quantity))
    if actor is not None and not getattr(actor, "is_authenticated", False):
        actor = None

    with transaction.atomic():
        for _ in range(max(settings.INVENTORY_CAS_RETRIES, 1)):
            locked = Product.objects.select_for_update().get(pk=product.pk)
            stock_before = locked.stock
            stock_after = stock_before + delta
            if stock_after < 0:
                raise InsufficientStock(
                    f"Only {stock_before} of {locked.name} available, {abs(delta)} requested.",
                    product=locked,
                    requested=abs(delta),
                    available=stock_before,
                )
            swapped = Product.objects.filter(pk=locked.pk, stock=stock_before).update(
                stock=stock_after,
                updated_at=timezone.now(),
            )
            if swapped:
                break
            logger.info("Stock for %s changed during update, retrying", locked.sku)
        else:
            logger.warning("Giving up on stock update for %s after %s attempts", locked.sku, settings.INVENTORY_CAS_RETRIES)
            raise StockConflict()

        log = InventoryLog.objects.create(
            product=locked,
            movement_type=movement_type,
            quantity=abs(delta),
            stock_before=stock_before,
            stock_after=stock_after,
            reason=reason or "",
            reference_type=reference_type,
            reference_id=str(reference_id or ""),
            created_by=actor,
        )
        locked.stock = stock_after
        _schedule_stock_alerts(locked, log)

    product.stock = stock_after
    logger.info(
        "Stock %s %s %s: %s -> %s",
        locked.sku,
        movement_type,
        log.quantity,
        stock_before,
        stock_after,
    )
    return log


def adjust_to(*, product, target, reason, actor=None):
    target = to_quantity(target)
    if target < 0:
        raise ValueError("Stock cannot be set below 0.")
    with transaction.atomic():
        current = Product.objects.select_for_update().get(pk=product.pk).stock
        if target == current:
            raise ValueError("New quantity matches the current stock.")
        return apply_movement(
            product=product,
            movement_type=MovementType.ADJUSTMENT,
            quantity=target - current,
            reason=reason,
            actor=actor,
            reference_type=ReferenceType.MANUAL,
        )


def _schedule_stock_alerts(product, log):
    # Alerts only follow stock going down.
    if log.stock_after >= log.stock_before:
        return

    status = stock_status_for(log.stock_after, product.min_stock)
    if status == StockStatus.NORMAL:
        return

    def send():
        kwargs = {"product": product, "stock": log.stock_after, "min_stock": product.min_stock, "log": log}
        if status == StockStatus.OUT:
            stock_out.send(sender=Product, **kwargs)
        else:
            stock_low.send(sender=Product, **kwargs)

    transaction.on_commit(send)


def set_min_stock(*, product, min_stock):
    if isinstance(min_stock, bool) or not isinstance(min_stock, int) or min_stock < 0:
        raise ValueError("min_stock must be a non-negative integer.")
    with transaction.atomic():
        locked = Product.objects.select_for_update().get(pk=product.pk)
        meta = dict(locked.meta or {})
        previous = meta.get("min_stock")
        meta["min_stock"] = min_stock
        locked.meta = meta
        locked.save(update_fields=["meta", "updated_at"])
    product.meta = locked.meta
    return previous


def stock_alerts():
    queryset = Product.objects.filter(is_active=True)
    return {
        "low_stock": list(low_stock(queryset)),
        "out_of_stock": list(out_of_stock(queryset)),
    }


def movement_report(queryset):
    rows = (
        queryset.values("movement_type")
        .annotate(
            count=Count("id"),
            total_quantity=Coalesce(Sum("quantity"), 0, output_field=DecimalField(max_digits=14, decimal_places=3)),
        )
        .order_by("movement_type")
    )
    return {row["movement_type"]: {"count": row["count"], "total_quantity": row["total_quantity"]} for row in rows}


def _stock_at_end(logs):
    newest = logs.values_list("created_at", flat=True).first()
    if newest is None:
        return None
    tied = list(logs.filter(created_at=newest).values_list("stock_before", "stock_after"))
    if len(tied) == 1:
        return tied[0][1]
    base = _stock_at_end(logs.filter(created_at__lt=newest))
    if base is None:
        base = Decimal("0")
    return base + sum((after - before for before, after in tied), Decimal("0"))


def latest_logged_stock(product):
    """Stock level at the end of ``product``'s movement log, or None when it has no movements.

    Rows written in the same instant share ``created_at``; their combined delta is
    applied to the stock before them, so the answer does not depend on tie order.
    """
    return _stock_at_end(product.inventory_logs.order_by("-created_at"))


def ledger_mismatches():
    """Yield (product, cached stock, latest logged stock) for products whose cache disagrees with the log."""
    for product in Product.objects.order_by("sku"):
        latest = latest_logged_stock(product)
        expected = latest if latest is not None else Decimal("0")
        if product.stock != expected:
            yield product, product.stock, latest
