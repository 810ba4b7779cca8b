"""
REST and GraphQL views for checkout, confirmation and orders.
"""
import json
import logging

from ariadne import graphql_sync
from django.conf import settings
from django.db import connection
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from shop.api.dependencies import (
    cancellation_service,
    checkout_service,
    confirmation_service,
    order_service,
)
from shop.api.middleware import ErrorHandler, json_endpoint, parse_json_body
from shop.api.schema import error_formatter, schema
from shop.api.serializers import serialize_order

logger = logging.getLogger(__name__)


@csrf_exempt
@require_http_methods(["POST"])
@json_endpoint()
def create_payment_intent(request):
    result = checkout_service().create_payment_intent(request.user.pk, parse_json_body(request))
    return JsonResponse({
        "success": True,
        "clientSecret": result.client_secret,
        "orderId": str(result.order_id),
        "orderNumber": result.order_number,
    })


@csrf_exempt
@require_http_methods(["POST"])
@json_endpoint()
def confirm_payment(request):
    data = parse_json_body(request)
    result = confirmation_service().confirm_from_client(
        data.get("paymentIntentId"),
        data.get("orderId"),
        request.user.pk,
    )
    return JsonResponse({
        "success": True,
        "message": (
            "Payment confirmed and order placed successfully" if result.applied else "Order already confirmed"
        ),
        "order": serialize_order(result.order),
    })


@csrf_exempt
@require_http_methods(["POST"])
def stripe_webhook(request):
    """Stripe webhook. Verifies the signature over the raw body before parsing."""
    try:
        event = confirmation_service().process_webhook(
            request.body,
            request.headers.get("Stripe-Signature"),
        )
    except Exception as e:
        # 4xx for bad signatures, 5xx otherwise so Stripe redelivers.
        return ErrorHandler.handle_error(e)
    logger.info("webhook_received", extra={"event_id": event.id, "event_type": event.type})
    return JsonResponse({"received": True})


@require_http_methods(["GET"])
@json_endpoint()
def order_detail(request, order_id):
    order = order_service().get_order(order_id, request.user.pk)
    return JsonResponse({"success": True, "order": serialize_order(order)})


@require_http_methods(["GET"])
@json_endpoint()
def order_list(request):
    orders, counts = order_service().list_orders(request.user.pk, status=request.GET.get("status"))
    return JsonResponse({
        "success": True,
        "orders": [serialize_order(order) for order in orders],
        "statusCounts": counts,
    })


@csrf_exempt
@require_http_methods(["POST"])
@json_endpoint()
def cancel_order(request, order_id):
    data = parse_json_body(request)
    order = cancellation_service().cancel_order(order_id, request.user.pk, data.get("reason"))
    return JsonResponse({
        "success": True,
        "message": "Order cancelled successfully",
        "order": serialize_order(order),
    })


@csrf_exempt
@require_http_methods(["PATCH"])
@json_endpoint(staff_required=True)
def update_order_status(request, order_id):
    data = parse_json_body(request)
    order = order_service().update_status(order_id, data.get("newStatus"))
    return JsonResponse({"success": True, "order": serialize_order(order)})


@csrf_exempt
@require_http_methods(["GET", "POST"])
@json_endpoint()
def graphql_view(request):
    """GraphQL endpoint."""
    if request.method == "GET":
        return JsonResponse({"message": "GraphQL endpoint. Use POST for queries."})

    data = parse_json_body(request)
    success, result = graphql_sync(
        schema,
        data,
        context_value={"request": request},
        error_formatter=error_formatter,
        debug=settings.DEBUG,
    )
    if result.get("errors"):
        logger.info(
            "graphql_errors",
            extra={
                "request_id": getattr(request, "request_id", None),
                "errors": json.dumps([error.get("message") for error in result["errors"]]),
            },
        )
    return JsonResponse(result, status=200 if success else 400)


@require_http_methods(["GET"])
def health(request):
    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
    except Exception as e:
        logger.error("health_check_failed", extra={"error": str(e)}, exc_info=True)
        return JsonResponse({"status": "unavailable", "database": "error"}, status=503)
    return JsonResponse({"status": "ok", "database": "ok"})
