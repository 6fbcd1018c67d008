from django.core.exceptions import ValidationError as DjangoValidationError
from django.utils.dateparse import parse_date
from rest_framework.exceptions import ValidationError


def pk_param(params, name, model):
    """Parse a primary-key query parameter for ``model``; None when absent, 400 when malformed."""
    value = (params.get(name) or "").strip()
    if not value:
        return None
    try:
        return model._meta.pk.to_python(value)
    except DjangoValidationError:
        raise ValidationError({name: [f"'{value}' is not a valid id."]}) from None


def date_param(params, name):
    value = (params.get(name) or "").strip()
    if not value:
        return None
    try:
        parsed = parse_date(value)
    except ValueError:
        parsed = None
    if parsed is None:
        raise ValidationError({name: [f"'{value}' is not a valid date (YYYY-MM-DD)."]})
    return parsed
