"""
Audit Models for Rental Ledger

Every generation run and every change to a recurring flag is logged
for audit purposes. This provides:
1. A record of which run created which items
2. Debugging information when a run partially fails
3. Accountability for manual re-triggers

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.
    """
    # Generation runs
    GENERATION_STARTED = "generation_started"
    GENERATION_COMPLETED = "generation_completed"
    GENERATION_FAILED = "generation_failed"

    # Partial failures inside a run
    PROPERTY_PROCESSING_FAILED = "property_processing_failed"
    EXPENSE_GENERATION_FAILED = "expense_generation_failed"

    # Pre-generation checks
    PERIOD_VALIDATED = "period_validated"

    # Recurring flag changes
    RECURRING_FLAG_UPDATED = "recurring_flag_updated"

    # System events
    SYSTEM_ERROR = "system_error"
    STORAGE_ERROR = "storage_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=_utc_now,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'run', 'property', 'expense')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="Store id of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (all events of one generation run)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by an operator rather than the scheduler?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.generation_started(run_id, "2025-06", "2025-07", False)
        event = AuditEventBuilder.recurring_flag_updated(...)
    """

    @staticmethod
    def generation_started(
        run_id: UUID,
        source_period: str,
        target_period: str,
        dry_run: bool,
        is_user_action: bool = False,
    ) -> AuditEvent:
        mode = "dry run" if dry_run else "live"
        return AuditEvent(
            event_type=AuditEventType.GENERATION_STARTED,
            entity_type="run",
            entity_id=str(run_id),
            correlation_id=run_id,
            description=f"Recurring generation started ({mode}): {source_period} -> {target_period}",
            details={
                "source_period": source_period,
                "target_period": target_period,
                "dry_run": dry_run,
            },
            is_user_action=is_user_action,
        )

    @staticmethod
    def generation_completed(
        run_id: UUID,
        created: int,
        skipped: int,
        errors: int,
        properties_processed: int,
        dry_run: bool,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GENERATION_COMPLETED,
            severity=AuditSeverity.WARNING if errors else AuditSeverity.INFO,
            entity_type="run",
            entity_id=str(run_id),
            correlation_id=run_id,
            description=(
                f"Recurring generation completed: {created} created, "
                f"{skipped} skipped, {errors} errors"
            ),
            details={
                "created": created,
                "skipped": skipped,
                "errors": errors,
                "properties_processed": properties_processed,
                "dry_run": dry_run,
            },
        )

    @staticmethod
    def generation_failed(
        run_id: UUID,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GENERATION_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="run",
            entity_id=str(run_id),
            correlation_id=run_id,
            description="Recurring generation failed",
            error_message=error_message,
        )

    @staticmethod
    def property_processing_failed(
        run_id: UUID,
        property_id: str,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PROPERTY_PROCESSING_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="property",
            entity_id=property_id,
            correlation_id=run_id,
            description=f"Could not process property {property_id}",
            error_message=error_message,
        )

    @staticmethod
    def expense_generation_failed(
        run_id: UUID,
        property_id: str,
        expense_id: Optional[str],
        description: Optional[str],
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_GENERATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="expense",
            entity_id=expense_id,
            correlation_id=run_id,
            description=f"Could not generate expense '{description or 'no description'}'",
            details={
                "property_id": property_id,
            },
            error_message=error_message,
        )

    @staticmethod
    def period_validated(
        source_period: str,
        target_period: str,
        can_generate: bool,
        issues: list[dict],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PERIOD_VALIDATED,
            severity=AuditSeverity.INFO if can_generate else AuditSeverity.WARNING,
            entity_type="period",
            entity_id=target_period,
            description=(
                f"Validated {source_period} -> {target_period}: "
                f"{'can generate' if can_generate else 'blocked'}"
            ),
            details={
                "source_period": source_period,
                "target_period": target_period,
                "can_generate": can_generate,
                "issues": issues,
            },
        )

    @staticmethod
    def recurring_flag_updated(
        property_id: str,
        period: str,
        expense_id: str,
        is_recurring: bool,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRING_FLAG_UPDATED,
            entity_type="expense",
            entity_id=expense_id,
            description=(
                f"Expense {expense_id} marked as "
                f"{'recurring' if is_recurring else 'not recurring'}"
            ),
            details={
                "property_id": property_id,
                "period": period,
                "is_recurring": is_recurring,
            },
            is_user_action=True,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def storage_error(
        backend: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"Storage error: {backend}",
            error_message=error_message,
            details={
                "backend": backend,
            },
            correlation_id=correlation_id,
        )
