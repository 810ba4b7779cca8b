"""
Transactional Outbox pattern implementation.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID, uuid4

from django.db import models
from django.db.models import F
from django.utils import timezone

from shop.domain.events import DomainEvent
from shop.infra.models import TimeStampedModel


class OutboxEvent(TimeStampedModel):
    """Outbox event for transactional outbox pattern."""
    id = models.UUIDField(primary_key=True, default=uuid4, editable=False)
    aggregate_id = models.UUIDField()
    aggregate_type = models.CharField(max_length=50)
    event_type = models.CharField(max_length=100)
    event_data = models.JSONField()
    processed = models.BooleanField(default=False)
    processed_at = models.DateTimeField(null=True, blank=True)
    retry_count = models.IntegerField(default=0)

    class Meta:
        indexes = [
            models.Index(fields=("processed", "created_at"), name="outbox_pending_idx"),
            models.Index(fields=("aggregate_id", "aggregate_type"), name="outbox_aggregate_idx"),
        ]


class OutboxRepository:
    """Repository for outbox events.

    ``add_event`` must run inside the same ``transaction.atomic()`` block as
    the state change it describes, so the event commits or rolls back with it.
    """

    def add_event(self, event: DomainEvent, aggregate_type: str) -> UUID:
        """Add event to outbox (within the caller's transaction)."""
        if not event.occurred_at:
            event.occurred_at = timezone.now().isoformat()
        outbox_event = OutboxEvent.objects.create(
            aggregate_id=event.aggregate_id,
            aggregate_type=aggregate_type,
            event_type=event.event_type,
            event_data=self._serialize_event(event),
        )
        return outbox_event.id

    def get_unprocessed_events(self, limit: int = 100, max_retries: int | None = None) -> list[OutboxEvent]:
        """Get unprocessed events, oldest first."""
        queryset = OutboxEvent.objects.filter(processed=False)
        if max_retries is not None:
            queryset = queryset.filter(retry_count__lt=max_retries)
        return list(queryset.order_by("created_at")[:limit])

    def mark_processed(self, event_id: UUID) -> None:
        """Mark event as processed."""
        OutboxEvent.objects.filter(id=event_id).update(
            processed=True,
            processed_at=timezone.now(),
        )

    def increment_retry(self, event_id: UUID) -> None:
        """Increment retry count."""
        OutboxEvent.objects.filter(id=event_id).update(
            retry_count=F("retry_count") + 1,
        )

    def _serialize_event(self, event: DomainEvent) -> dict:
        """Serialize event to a JSON-compatible dict."""
        data = {
            "event_id": str(event.event_id),
            "aggregate_id": str(event.aggregate_id),
            "event_type": event.event_type,
            "version": event.version.value,
            "occurred_at": event.occurred_at,
        }
        for key, value in event.__dict__.items():
            if key in data or key == "version":
                continue
            if isinstance(value, (UUID, Decimal)):
                data[key] = str(value)
            elif isinstance(value, datetime):
                data[key] = value.isoformat()
            elif isinstance(value, Enum):
                data[key] = value.value
            else:
                data[key] = value
        return data
