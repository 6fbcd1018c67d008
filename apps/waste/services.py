import logging
from decimal import Decimal

from django.db import transaction
from django.db.models import Count, DecimalField, Sum
from django.db.models.functions import Coalesce
from django.utils import timezone

from apps.audit.services import record_audit
from apps.common.exceptions import AlreadyDecided, UnauthorizedActor
from apps.common.permissions import has_capability
from apps.inventory.models import MovementType, ReferenceType
from apps.inventory.services import apply_movement, to_quantity
from apps.waste.models import WasteLog, WasteStatus

logger = logging.getLogger(__name__)


def submit_waste(*, product, quantity, reason, notes="", actor):
    """Record a pending waste entry. Stock is untouched until the entry is approved."""
    quantity = to_quantity(quantity)
    if quantity <= 0:
        raise ValueError("Quantity must be greater than 0.")

    unit_cost = product.price_aud
    with transaction.atomic():
        entry = WasteLog.objects.create(
            product=product,
            logged_by=actor,
            quantity=quantity,
            reason=reason,
            notes=notes or "",
            unit_cost=unit_cost,
            total_cost=(unit_cost * quantity).quantize(Decimal("0.01")),
        )
        record_audit(
            actor=actor,
            action="waste.submit",
            entity_type="waste_log",
            entity_id=entry.id,
            payload={"product_id": str(product.id), "quantity": str(quantity), "reason": reason},
        )
    logger.info("Waste submitted for %s: %s (%s)", product.sku, quantity, reason)
    return entry


def decide_waste(*, entry, approve, actor, notes=""):
    if not has_capability(actor, "waste.decide"):
        raise UnauthorizedActor()

    with transaction.atomic():
        locked = WasteLog.objects.select_for_update().select_related("product").get(pk=entry.pk)
        if locked.status != WasteStatus.PENDING:
            raise AlreadyDecided()

        now = timezone.now()
        if approve:
            apply_movement(
                product=locked.product,
                movement_type=MovementType.WASTE,
                quantity=locked.quantity,
                reason=f"Waste approved: {locked.get_reason_display()}",
                actor=actor,
                reference_type=ReferenceType.WASTE,
                reference_id=locked.id,
            )
            locked.approved_at = now
            locked.approved_by = actor
            locked.save(update_fields=["approved_at", "approved_by"])
        else:
            locked.rejected_at = now
            locked.rejected_by = actor
            locked.rejection_notes = notes or ""
            locked.save(update_fields=["rejected_at", "rejected_by", "rejection_notes"])

        record_audit(
            actor=actor,
            action="waste.approve" if approve else "waste.reject",
            entity_type="waste_log",
            entity_id=locked.id,
            payload={"quantity": str(locked.quantity), "notes": notes or ""},
        )

    logger.info("Waste entry %s %s by %s", locked.id, locked.status, actor)
    return locked


def _totals(queryset):
    return queryset.aggregate(
        count=Count("id"),
        total_quantity=Coalesce(Sum("quantity"), 0, output_field=DecimalField(max_digits=14, decimal_places=3)),
        total_value=Coalesce(Sum("total_cost"), 0, output_field=DecimalField(max_digits=14, decimal_places=2)),
    )


def waste_summary(queryset):
    summary = {"all": _totals(queryset)}
    for status in WasteStatus.values:
        summary[status] = _totals(queryset.with_status(status))

    by_reason = (
        queryset.approved()
        .values("reason")
        .annotate(
            count=Count("id"),
            total_quantity=Coalesce(Sum("quantity"), 0, output_field=DecimalField(max_digits=14, decimal_places=3)),
            total_value=Coalesce(Sum("total_cost"), 0, output_field=DecimalField(max_digits=14, decimal_places=2)),
        )
        .order_by("reason")
    )
    summary["approved_by_reason"] = {
        row["reason"]: {key: row[key] for key in ("count", "total_quantity", "total_value")} for row in by_reason
    }
    return summary
