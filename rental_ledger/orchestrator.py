"""
Main Orchestrator for Rental Ledger

This module ties together all the components and defines the
end-to-end flows an operator (CLI, console, scheduler) can trigger:
1. Generation (validate window → generate → audit)
2. Reporting (period summaries, pre-generation validation, period lists)
3. Flag management (mark/unmark recurring, list recurring items)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Caller-supplied years must fall inside the configured window
- Every run and every flag change is audited
- Callers never talk to the store directly

CRITICAL: Without a configured store every operation answers with a
failed result ("storage not configured"). An empty stand-in store would
report "0 properties" and hide the misconfiguration.

This is the "glue" between the outer surfaces and the engine.
"""

from datetime import datetime
from typing import Callable, Optional, Union

import structlog

from rental_ledger.audit import AuditLogger
from rental_ledger.config import get_settings
from rental_ledger.models.expense import (
    GenerationOptions,
    GenerationResult,
    GenerationSummary,
    PeriodRef,
    PeriodSummary,
    PropertyRecurringExpenses,
    RecurringListing,
    RecurringToggleResult,
    ValidationIssue,
    ValidationResult,
)
from rental_ledger.periods.codec import (
    InvalidPeriod,
    Period,
    current_period,
    encode_period,
    resolve_generation_periods,
    utc_now,
)
from rental_ledger.periods.enumerator import PeriodEnumerator, PeriodListing
from rental_ledger.recurring import (
    PeriodSummaryBuilder,
    RecurringFlagService,
    RecurringGenerationEngine,
)
from rental_ledger.services.storage import (
    DocumentStoreInterface,
    FirestoreClient,
    FirestoreDocumentStore,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    InMemoryDocumentStore,
    resolve,
)


logger = structlog.get_logger(__name__)


class PeriodOutOfRange(InvalidPeriod):
    """A caller-supplied year lies outside the configured window."""
    pass


STORAGE_NOT_CONFIGURED = "Storage not configured"


class RecurringFlow:
    """
    Orchestrates recurring generation and its supporting operations.

    Flow for a run:
    1. Check caller-supplied years against the window
    2. Generate (engine audits start, failures and completion)
    3. Return the aggregate result

    Validation is optional and advisory; a scheduled run goes straight
    to generation.

    `store` may be None when storage could not be set up. Operations then
    return a failed result carrying `storage_error` instead of running.
    """

    def __init__(
        self,
        store: Optional[DocumentStoreInterface],
        audit_logger: Optional[AuditLogger] = None,
        clock: Callable[[], datetime] = utc_now,
        min_year: int = 2020,
        max_year: int = 2030,
        storage_error: Optional[str] = None,
    ):
        self._store = store
        self._audit_logger = audit_logger
        self._clock = clock
        self._min_year = min_year
        self._max_year = max_year
        self._storage_error = storage_error or STORAGE_NOT_CONFIGURED

        self._engine = None
        self._summaries = None
        self._flags = None
        self._enumerator = None
        if store is not None:
            self._engine = RecurringGenerationEngine(store, audit_logger, clock)
            self._summaries = PeriodSummaryBuilder(store, audit_logger, clock)
            self._flags = RecurringFlagService(store, audit_logger, clock)
            self._enumerator = PeriodEnumerator(store)

    @property
    def store(self) -> Optional[DocumentStoreInterface]:
        return self._store

    @property
    def storage_configured(self) -> bool:
        return self._store is not None

    @property
    def storage_error(self) -> Optional[str]:
        """Why storage is unavailable, or None when it is configured."""
        return None if self.storage_configured else self._storage_error

    def check_year(self, year: Optional[int]) -> None:
        """
        Reject a caller-supplied year outside [min_year, max_year].

        Raises:
            PeriodOutOfRange: If the year is outside the window
        """
        if year is None:
            return
        if not self._min_year <= year <= self._max_year:
            raise PeriodOutOfRange(
                f"Year {year} is outside the allowed range "
                f"{self._min_year}-{self._max_year}"
            )

    def _check_options(self, options: GenerationOptions) -> None:
        self.check_year(options.source_year)
        self.check_year(options.target_year)

    def _resolve(self, options: GenerationOptions) -> tuple[Period, Period]:
        return resolve_generation_periods(
            current_period(self._clock),
            source_year=options.source_year,
            source_month=options.source_month,
            target_year=options.target_year,
            target_month=options.target_month,
        )

    async def generate(
        self,
        options: Optional[GenerationOptions] = None,
        is_user_action: bool = False,
    ) -> GenerationResult:
        """
        Run recurring generation.

        Args:
            options: Source/target overrides and dry-run flag
            is_user_action: True for manual triggers, False for the scheduler

        Raises:
            PeriodOutOfRange: Caller-supplied year outside the window
            InvalidPeriod: Caller-supplied period is malformed
        """
        options = options or GenerationOptions()
        self._check_options(options)

        if not self.storage_configured:
            source, target = self._resolve(options)
            logger.error("generation_failed", error=self.storage_error)
            if self._audit_logger:
                await self._audit_logger.log_storage_error("document_store", self.storage_error)
            return GenerationResult(
                success=False,
                error=self.storage_error,
                summary=GenerationSummary(
                    source_year=source.year,
                    source_month=source.month,
                    target_year=target.year,
                    target_month=target.month,
                    source_period=source.key,
                    target_period=target.key,
                    dry_run=options.dry_run,
                    timestamp=self._clock(),
                ),
            )

        return await self._engine.generate(options, is_user_action=is_user_action)

    async def validate(self, options: Optional[GenerationOptions] = None) -> ValidationResult:
        """Advisory check of a source/target pair before generating."""
        options = options or GenerationOptions()
        self._check_options(options)

        if not self.storage_configured:
            source, target = self._resolve(options)
            return ValidationResult(
                success=False,
                can_generate=False,
                source=PeriodRef.of(source),
                target=PeriodRef.of(target),
                issues=[ValidationIssue(
                    code="storage_unavailable",
                    message=self.storage_error,
                    severity="error",
                )],
            )

        return await self._summaries.validate(options)

    async def summarize(self, year: int, month: int) -> PeriodSummary:
        """Per-property item counts for one period."""
        self.check_year(year)
        if not self.storage_configured:
            return PeriodSummary(
                year=year,
                month=month,
                period=encode_period(year, month),
                success=False,
                error=self.storage_error,
            )
        return await self._summaries.summarize(year, month)

    async def list_periods(
        self,
        kind,
        property_id: str,
        unit_id: Optional[str] = None,
    ) -> PeriodListing:
        """Periods with data for a property (expenses) or unit (incomes)."""
        if not self.storage_configured:
            # Still reject bad addressing, like a configured store would
            resolve(kind, property_id, unit_id)
            return PeriodListing(ok=False, error=self.storage_error)
        return await self._enumerator.list_periods(kind, property_id, unit_id)

    async def set_recurring(
        self,
        property_id: str,
        year: int,
        month: int,
        expense_id: str,
        is_recurring: bool,
    ) -> RecurringToggleResult:
        """Mark or unmark one expense item as recurring."""
        self.check_year(year)
        if not self.storage_configured:
            return RecurringToggleResult(
                success=False,
                property_id=property_id,
                expense_id=expense_id,
                period=encode_period(year, month),
                is_recurring=is_recurring,
                error=self.storage_error,
            )
        return await self._flags.set_recurring(property_id, year, month, expense_id, is_recurring)

    async def list_recurring(
        self,
        year: int,
        month: int,
        property_id: Optional[str] = None,
    ) -> Union[PropertyRecurringExpenses, RecurringListing]:
        """Recurring items of one property, or of every property if none is given."""
        self.check_year(year)
        if not self.storage_configured:
            if property_id:
                return PropertyRecurringExpenses(
                    success=False,
                    error=self.storage_error,
                    property_id=property_id,
                    year=year,
                    month=month,
                )
            return RecurringListing(success=False, error=self.storage_error, year=year, month=month)

        if property_id:
            return await self._flags.list_recurring(property_id, year, month)
        return await self._flags.list_all_recurring(year, month)


def create_app_components(
    use_storage: bool = True,
    clock: Callable[[], datetime] = utc_now,
) -> tuple[RecurringFlow, Optional[FirestoreClient]]:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to connect to Firestore.
                    Set to False to run against an empty in-memory store
                    (local experiments and tests only).
        clock: Source of "now" for the current-period default

    Returns:
        (recurring_flow, firestore_client). If Firestore can't be set up,
        the flow has no store and every operation reports
        "Storage not configured".
    """
    app_settings = get_settings().app
    firestore_client = None
    store: Optional[DocumentStoreInterface] = None
    storage_error = None

    if use_storage:
        try:
            firestore_client = FirestoreClient()
            store = FirestoreDocumentStore(firestore_client)
        except Exception as e:
            # Storage not configured - continue without it
            logger.warning("storage_not_configured", error=str(e))
            firestore_client = None
            storage_error = f"{STORAGE_NOT_CONFIGURED}: {e}"
    else:
        store = InMemoryDocumentStore()

    audit_logger = AuditLogger()  # Local-only logging
    if use_storage and app_settings.audit_to_sheets:
        try:
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(GoogleSheetsClient()))
        except Exception as e:
            logger.warning("audit_storage_not_configured", error=str(e))

    flow = RecurringFlow(
        store=store,
        audit_logger=audit_logger,
        clock=clock,
        min_year=app_settings.min_year,
        max_year=app_settings.max_year,
        storage_error=storage_error,
    )

    return flow, firestore_client
