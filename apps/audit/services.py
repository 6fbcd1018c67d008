from apps.audit.models import AuditLog


def record_audit(*, actor, action, entity_type, entity_id, payload=None):
    """Append an audit row. ``actor`` may be None for system-initiated changes."""
    if actor is not None and not getattr(actor, "is_authenticated", False):
        actor = None
    return AuditLog.objects.create(
        actor=actor,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        payload=payload or {},
    )
