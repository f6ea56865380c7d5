"""Audit trail of loan workflow actions."""

import logging
import threading
import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Callable

from coop_loans.models.base import Event

logger = logging.getLogger(__name__)

AUDIT_ENTITY_TYPE = "audit_events"


class AuditAction(str, Enum):
    SUBMITTED = "submitted"
    GUARANTOR_APPROVED = "guarantor_approved"
    GUARANTOR_REJECTED = "guarantor_rejected"
    INVITATION_RESENT = "invitation_resent"
    QUORUM_REACHED = "quorum_reached"
    APPROVED = "approved"
    REJECTED = "rejected"
    ACTIVATED = "activated"
    CLOSED = "closed"
    PAYMENT_RECORDED = "payment_recorded"
    DEDUCTION_PROCESSED = "deduction_processed"
    DEDUCTION_FAILED = "deduction_failed"
    OVERDUE_SWEPT = "overdue_swept"


class AuditTrail:
    """Record workflow actions as events and publish them to sinks.

    A sink failure is logged and otherwise ignored; auditing never changes
    the outcome of the action being audited.
    """

    def __init__(
        self,
        sinks: list[Any] | None = None,
        source: str = "coop-loans",
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.sinks = list(sinks or [])
        self.source = source
        self.clock = clock
        self.events: list[Event] = []
        self._lock = threading.Lock()

    def record(
        self,
        action: AuditAction,
        subject: str,
        actor: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> Event:
        """Record one action against ``subject`` (usually a loan id)."""
        event = Event(
            event_id=uuid.uuid4().hex,
            event_type=f"loan.{action.value}",
            event_time=self.clock(),
            source=self.source,
            subject=subject,
            data=dict(data or {}),
            metadata={"actor": actor} if actor else {},
        )
        with self._lock:
            self.events.append(event)

        for sink in self.sinks:
            try:
                sink.write_batch(AUDIT_ENTITY_TYPE, [event])
            except Exception as e:
                logger.warning(
                    "Audit sink %s failed for %s: %s", type(sink).__name__, event.event_type, e
                )
        return event

    def events_for(self, subject: str) -> list[Event]:
        """Events recorded for one subject, oldest first."""
        with self._lock:
            return [e for e in self.events if e.subject == subject]
