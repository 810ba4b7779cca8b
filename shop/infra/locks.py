"""
Cross-process order locks using PostgreSQL advisory locks.
"""
from contextlib import contextmanager
from uuid import UUID

from django.db import connection
from django.db.transaction import TransactionManagementError


@contextmanager
def order_lock(order_id: UUID):
    """
    Acquire a transaction-scoped advisory lock on an order.

    Serializes the client confirmation, the webhook and cancellation for the
    same order even when they run in different processes. Must be entered
    inside ``transaction.atomic()``; the lock is released on commit/rollback.

    Usage:
        with transaction.atomic():
            with order_lock(order_id):
                ...
    """
    if not connection.in_atomic_block:
        raise TransactionManagementError("order_lock() requires an open transaction")

    # SQLite has no advisory locks; it serializes writers per database.
    if connection.vendor == "postgresql":
        with connection.cursor() as cursor:
            cursor.execute(
                "SELECT pg_advisory_xact_lock(hashtext(%s)::bigint)",
                [f"order:{order_id}"],
            )
    yield
