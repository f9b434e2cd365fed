"""
Audit Logger

DESIGN DECISION: Every generation run is logged.
This provides:
1. Traceability from a generated item back to the run that made it
2. Debugging capability for partial failures
3. A history of manual re-triggers and flag changes

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash a run if logging fails)
- Uses the generation run id as correlation id
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from rental_ledger.models.audit import AuditEvent, AuditEventBuilder
from rental_ledger.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. An audit store such as Google Sheets (for persistence), if configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("rental_ledger.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_generation_started(
        self,
        run_id: UUID,
        source_period: str,
        target_period: str,
        dry_run: bool,
        is_user_action: bool = False,
    ) -> None:
        """Log the start of a generation run."""
        await self.log(AuditEventBuilder.generation_started(
            run_id=run_id,
            source_period=source_period,
            target_period=target_period,
            dry_run=dry_run,
            is_user_action=is_user_action,
        ))

    async def log_generation_completed(
        self,
        run_id: UUID,
        created: int,
        skipped: int,
        errors: int,
        properties_processed: int,
        dry_run: bool,
    ) -> None:
        """Log the end of a generation run."""
        await self.log(AuditEventBuilder.generation_completed(
            run_id=run_id,
            created=created,
            skipped=skipped,
            errors=errors,
            properties_processed=properties_processed,
            dry_run=dry_run,
        ))

    async def log_generation_failed(
        self,
        run_id: UUID,
        error_message: str,
    ) -> None:
        """Log a run that could not start processing properties."""
        await self.log(AuditEventBuilder.generation_failed(
            run_id=run_id,
            error_message=error_message,
        ))

    async def log_property_failed(
        self,
        run_id: UUID,
        property_id: str,
        error_message: str,
    ) -> None:
        """Log a property-level failure inside a run."""
        await self.log(AuditEventBuilder.property_processing_failed(
            run_id=run_id,
            property_id=property_id,
            error_message=error_message,
        ))

    async def log_expense_failed(
        self,
        run_id: UUID,
        property_id: str,
        expense_id: Optional[str],
        description: Optional[str],
        error_message: str,
    ) -> None:
        """Log an item-level failure inside a run."""
        await self.log(AuditEventBuilder.expense_generation_failed(
            run_id=run_id,
            property_id=property_id,
            expense_id=expense_id,
            description=description,
            error_message=error_message,
        ))

    async def log_period_validated(
        self,
        source_period: str,
        target_period: str,
        can_generate: bool,
        issues: list[dict],
    ) -> None:
        """Log a pre-generation validation."""
        await self.log(AuditEventBuilder.period_validated(
            source_period=source_period,
            target_period=target_period,
            can_generate=can_generate,
            issues=issues,
        ))

    async def log_recurring_flag_updated(
        self,
        property_id: str,
        period: str,
        expense_id: str,
        is_recurring: bool,
    ) -> None:
        """Log a change to an item's isRecurring flag."""
        await self.log(AuditEventBuilder.recurring_flag_updated(
            property_id=property_id,
            period=period,
            expense_id=expense_id,
            is_recurring=is_recurring,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))

    async def log_storage_error(
        self,
        backend: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a storage backend error."""
        await self.log(AuditEventBuilder.storage_error(
            backend=backend,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new run or operator action.
    """
    return uuid4()
