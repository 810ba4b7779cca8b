"""
GraphQL schema definition using Ariadne.
"""
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from uuid import UUID

from ariadne import (
    MutationType,
    QueryType,
    ScalarType,
    format_error,
    load_schema_from_path,
    make_executable_schema,
)

from shop.api.dependencies import cancellation_service, order_service
from shop.api.serializers import serialize_order
from shop.domain.errors import ShopError

# Load schema from .graphql files
SCHEMAS_DIR = Path(__file__).parent / "schemas"
type_defs = "\n".join([
    load_schema_from_path(SCHEMAS_DIR / "common.graphql"),
    load_schema_from_path(SCHEMAS_DIR / "query.graphql"),
    load_schema_from_path(SCHEMAS_DIR / "mutation.graphql"),
])

query = QueryType()
mutation = MutationType()


def _user_id(info) -> int:
    return info.context["request"].user.pk


@query.field("order")
def resolve_order(_, info, id):
    """Resolve a single order owned by the caller."""
    return serialize_order(order_service().get_order(id, _user_id(info)))


@query.field("myOrders")
def resolve_my_orders(_, info, status=None):
    orders, counts = order_service().list_orders(_user_id(info), status=status)
    return {
        "orders": [serialize_order(order) for order in orders],
        "statusCounts": counts,
    }


@mutation.field("cancelOrder")
def resolve_cancel_order(_, info, orderId, reason=None):
    order = cancellation_service().cancel_order(orderId, _user_id(info), reason)
    return serialize_order(order)


def error_formatter(error, debug: bool = False) -> dict:
    """Expose domain error codes under ``extensions.code``."""
    formatted = format_error(error, debug)
    original = getattr(error, "original_error", None)
    if isinstance(original, ShopError):
        formatted["message"] = original.message
        formatted["extensions"] = {**formatted.get("extensions", {}), **original.to_dict()}
    return formatted


# Define custom scalars
decimal_scalar = ScalarType("Decimal")
uuid_scalar = ScalarType("UUID")
datetime_scalar = ScalarType("DateTime")


@decimal_scalar.serializer
def serialize_decimal(value):
    """Serialize Decimal to string."""
    return str(value)


@decimal_scalar.value_parser
def parse_decimal_value(value):
    return Decimal(str(value))


@uuid_scalar.serializer
def serialize_uuid(value):
    return str(value)


@uuid_scalar.value_parser
def parse_uuid_value(value):
    """Parse UUID from string."""
    if isinstance(value, UUID):
        return value
    return UUID(str(value))


@uuid_scalar.literal_parser
def parse_uuid_literal(ast, variable_values=None):
    return UUID(str(ast.value))


@datetime_scalar.serializer
def serialize_datetime(value):
    """Serialize DateTime to ISO format string."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


@datetime_scalar.value_parser
def parse_datetime_value(value):
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


# Create executable schema
schema = make_executable_schema(
    type_defs,
    query,
    mutation,
    datetime_scalar,
    decimal_scalar,
    uuid_scalar,
)
