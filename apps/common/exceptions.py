from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.views import exception_handler


class FulfillmentError(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Fulfillment request rejected."
    default_code = "fulfillment_error"


class ZoneNotServiced(FulfillmentError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_detail = "Sorry, we don't currently deliver to your area."
    default_code = "zone_not_serviced"


class UnsupportedCurrency(FulfillmentError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_detail = "No exchange rate is available for the requested currency."
    default_code = "unsupported_currency"


class InsufficientStock(FulfillmentError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Not enough stock to apply this movement."
    default_code = "insufficient_stock"

    def __init__(self, detail=None, code=None, *, product=None, requested=None, available=None):
        super().__init__(detail, code)
        self.product = product
        self.requested = requested
        self.available = available


class InvalidTransition(FulfillmentError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "This status change is not allowed."
    default_code = "invalid_transition"


class AlreadyDecided(FulfillmentError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "This waste entry has already been reviewed."
    default_code = "already_decided"


class UnauthorizedActor(FulfillmentError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Your role cannot perform this action."
    default_code = "unauthorized_actor"


class StockConflict(FulfillmentError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Stock changed concurrently, please retry."
    default_code = "stock_conflict"


class TransitionConflict(FulfillmentError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "The order was modified concurrently, please retry."
    default_code = "transition_conflict"


class InvalidOrderRequest(FulfillmentError):
    default_detail = "The order request is invalid."
    default_code = "invalid_order"


def api_exception_handler(exc, context):
    response = exception_handler(exc, context)
    if response is None:
        return response

    if isinstance(response.data, dict):
        detail = response.data.get("detail", "Request failed")
        fields = {k: v for k, v in response.data.items() if k != "detail"}
    else:
        detail = "Request failed"
        fields = {}

    code = getattr(exc, "default_code", "error")
    exc_detail = getattr(exc, "detail", None)
    if isinstance(exc, FulfillmentError) and hasattr(exc_detail, "code") and exc_detail.code:
        code = exc_detail.code

    response.data = {
        "code": code,
        "detail": detail,
        "fields": fields,
    }
    return response
