"""
Middleware and view helpers for request logging and error handling.
"""
import json
import logging
import time
from functools import wraps
from uuid import uuid4

from django.http import JsonResponse

from shop.domain.errors import ShopError, ValidationError

logger = logging.getLogger(__name__)


class ErrorHandler:
    """Error handler for API responses."""

    @classmethod
    def handle_error(cls, error: Exception) -> JsonResponse:
        """Handle error and return JSON response."""
        if isinstance(error, ShopError):
            if error.status_code >= 500:
                logger.warning(
                    "upstream_error",
                    extra={"error_type": type(error).__name__, "error": error.message},
                )
            return JsonResponse(
                {"success": False, "error": error.to_dict()},
                status=error.status_code,
            )

        # Log unexpected errors
        logger.error(
            "unexpected_error",
            extra={
                "error_type": type(error).__name__,
                "error": str(error),
            },
            exc_info=True,
        )

        return JsonResponse(
            {
                "success": False,
                "error": {
                    "code": "INTERNAL_ERROR",
                    "message": "An internal error occurred",
                },
            },
            status=500,
        )


def parse_json_body(request) -> dict:
    if not request.body:
        return {}
    try:
        data = json.loads(request.body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError("Invalid JSON")
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def json_endpoint(login_required: bool = True, staff_required: bool = False):
    """Wrap a view: authenticate, translate domain errors to JSON responses."""

    def decorator(view):
        @wraps(view)
        def wrapper(request, *args, **kwargs):
            user = request.user
            if (login_required or staff_required) and not user.is_authenticated:
                return JsonResponse(
                    {
                        "success": False,
                        "error": {"code": "UNAUTHENTICATED", "message": "Authentication required"},
                    },
                    status=401,
                )
            if staff_required and not user.is_staff:
                return JsonResponse(
                    {
                        "success": False,
                        "error": {"code": "FORBIDDEN", "message": "Staff access required"},
                    },
                    status=403,
                )
            try:
                return view(request, *args, **kwargs)
            except Exception as e:
                return ErrorHandler.handle_error(e)

        return wrapper

    return decorator


class RequestLoggingMiddleware:
    """Tags each request with an X-Request-ID and logs its outcome."""

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        request_id = request.headers.get("X-Request-ID") or str(uuid4())
        request.request_id = request_id
        started = time.monotonic()

        response = self.get_response(request)

        user = getattr(request, "user", None)
        logger.info(
            "http_request",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.path,
                "status": response.status_code,
                "user_id": user.pk if user is not None and user.is_authenticated else None,
                "duration_ms": int((time.monotonic() - started) * 1000),
            },
        )
        response["X-Request-ID"] = request_id
        return response
