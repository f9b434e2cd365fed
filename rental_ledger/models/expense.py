"""
Core Data Models for Rental Ledger

These models define the schemas for expense items and for everything
the recurring generation engine reports back. They are designed to:
1. Catch malformed source records before they are copied forward
2. Be serializable as plain structured data for the reporting layer
3. Support the audit trail

DESIGN DECISION: Documents in the store use camelCase field names
(isRecurring, dueDate, generatedFrom...). Models use snake_case
attributes with camelCase aliases, and accept either on input.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Literal, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from rental_ledger.periods.codec import Period, encode_period, parse_date


# Execution-time state. Never carried from one period to the next.
PAYMENT_STATUS_FIELDS = ("paidDate", "paymentDate", "receipt", "referenceNumber")


class LedgerModel(BaseModel):
    """Base model: camelCase aliases, populated by either name."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_dict(self) -> dict:
        """Dump as JSON-compatible data with camelCase keys."""
        return self.model_dump(by_alias=True, mode="json")


# =============================================================================
# STORED RECORDS
# =============================================================================

class GenerationLineage(LedgerModel):
    """
    Where a generated item came from.

    Stamped onto the new item as `generatedFrom` at creation time.
    Never mutated or recomputed afterwards.
    """
    source_doc_id: str = Field(
        ...,
        description="Id of the source item the new item was copied from"
    )
    source_year: int
    source_month: int = Field(ge=1, le=12)
    property_id: str
    generated_at: datetime


class ExpenseItem(LedgerModel):
    """
    A single expense line-item inside a property's period container.

    Extra fields are allowed: generation copies every field of the
    source item, including ones this model doesn't know about.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    id: Optional[str] = None
    # Legacy records may hold null here; generation copies them as-is
    description: Optional[str] = None
    amount: Decimal = Field(
        ...,
        description="Expense amount"
    )
    is_recurring: bool = False
    is_active: Optional[bool] = True
    year: Optional[int] = None
    month: Optional[int] = Field(default=None, ge=1, le=12)
    due_date: Optional[date] = None

    # Payment status (execution-time state)
    paid_date: Optional[Any] = None
    payment_date: Optional[Any] = None
    receipt: Optional[Any] = None
    reference_number: Optional[Any] = None

    # Recurrence bookkeeping
    recurring_template_id: Optional[str] = None
    generated_from: Optional[GenerationLineage] = None

    @field_validator("due_date", mode="before")
    @classmethod
    def parse_due_date(cls, v):
        """Accept ISO strings, full timestamps and datetime objects."""
        if v is None or v == "":
            return None
        return parse_date(v)

    @property
    def template_id(self) -> Optional[str]:
        """Id of the first item in this item's recurring chain."""
        return self.recurring_template_id or self.id


# =============================================================================
# GENERATION
# =============================================================================

class GenerationOptions(LedgerModel):
    """
    Options for a generation run.

    Source year/month default to the current period.
    Target is only honoured when both year and month are given;
    otherwise it is the period after the source.
    """
    source_year: Optional[int] = Field(default=None, ge=1)
    source_month: Optional[int] = Field(default=None, ge=1, le=12)
    target_year: Optional[int] = Field(default=None, ge=1)
    target_month: Optional[int] = Field(default=None, ge=1, le=12)
    dry_run: bool = False


class GenerationErrorRecord(LedgerModel):
    """One recovered failure inside a generation run."""
    kind: Literal["expense", "property"]
    property_id: str
    item_id: Optional[str] = None
    description: Optional[str] = None
    error: str
    error_type: Optional[str] = None


class GeneratedItemRecord(LedgerModel):
    """An item the run created (or would have created, in a dry run)."""
    property_id: str
    source_id: str
    document_id: Optional[str] = None
    description: Optional[str] = None
    amount: Any = None
    persisted: bool


class PropertyGenerationResult(LedgerModel):
    """Per-property counts for a generation run."""
    property_id: str
    property_name: Optional[str] = None
    created: int = 0
    skipped: int = 0
    errors: list[GenerationErrorRecord] = Field(default_factory=list)


class GenerationSummary(LedgerModel):
    """Run-level summary block."""
    source_year: int
    source_month: int
    target_year: int
    target_month: int
    source_period: str
    target_period: str
    dry_run: bool
    timestamp: datetime
    properties_processed: int = 0
    total_created: int = 0
    total_skipped: int = 0
    total_errors: int = 0


class GenerationResult(LedgerModel):
    """
    Aggregate result of one generation run.

    CRITICAL: `success` is True whenever the run completed its property
    loop, even if individual items failed. Partial failures are only
    visible in `errors`. The run fails as a whole only when no
    properties could be found.
    """
    run_id: UUID = Field(default_factory=uuid4)
    success: bool
    error: Optional[str] = None
    created: int = 0
    skipped: int = 0
    errors: list[GenerationErrorRecord] = Field(default_factory=list)
    properties: list[PropertyGenerationResult] = Field(default_factory=list)
    items: list[GeneratedItemRecord] = Field(default_factory=list)
    summary: Optional[GenerationSummary] = None


# =============================================================================
# SUMMARY & VALIDATION
# =============================================================================

class PeriodRef(LedgerModel):
    """A period as plain data."""
    year: int
    month: int
    key: str

    @classmethod
    def of(cls, period: Period) -> "PeriodRef":
        return cls(year=period.year, month=period.month, key=encode_period(*period))


class ExpenseDigest(LedgerModel):
    """Short listing of an expense item for summaries."""
    id: str
    description: Optional[str] = None
    amount: Any = None
    is_recurring: bool = False


class PropertyPeriodSummary(LedgerModel):
    """Counts for one property in one period."""
    property_id: str
    property_name: str
    total_expenses: int = 0
    recurring_expenses: int = 0
    expenses: list[ExpenseDigest] = Field(default_factory=list)
    error: Optional[str] = None


class PeriodSummary(LedgerModel):
    """Per-property and global counts for one period."""
    year: int
    month: int
    period: str
    success: bool = True
    error: Optional[str] = None
    properties: int = 0
    total_expenses: int = 0
    total_recurring_expenses: int = 0
    properties_summary: list[PropertyPeriodSummary] = Field(default_factory=list)


class ValidationIssue(LedgerModel):
    """A single issue found by pre-generation validation."""
    code: str = Field(
        ...,
        description="Machine-readable issue code (e.g. 'same_period')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning)$",
        description="Issue severity"
    )


class ValidationResult(LedgerModel):
    """
    Advisory pre-generation check.

    Errors block generation. Warnings don't, but should be shown.
    Nothing is locked or reserved by validating.
    """
    success: bool = True
    can_generate: bool
    source: PeriodRef
    target: PeriodRef
    source_summary: Optional[PeriodSummary] = None
    target_summary: Optional[PeriodSummary] = None
    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def errors(self) -> list[str]:
        return [i.message for i in self.issues if i.severity == "error"]

    @property
    def warnings(self) -> list[str]:
        return [i.message for i in self.issues if i.severity == "warning"]


# =============================================================================
# RECURRING FLAGS
# =============================================================================

class RecurringToggleResult(LedgerModel):
    """Outcome of setting or clearing isRecurring on one item."""
    success: bool
    property_id: str
    expense_id: str
    period: str
    is_recurring: bool
    message: Optional[str] = None
    error: Optional[str] = None


class PropertyRecurringExpenses(LedgerModel):
    """Recurring items of one property in one period."""
    success: bool = True
    error: Optional[str] = None
    property_id: str
    property_name: Optional[str] = None
    year: int
    month: int
    count: int = 0
    expenses: list[dict[str, Any]] = Field(default_factory=list)


class RecurringListing(LedgerModel):
    """Recurring items across all properties in one period."""
    success: bool = True
    error: Optional[str] = None
    year: int
    month: int
    total_count: int = 0
    properties_with_recurring: int = 0
    properties_data: list[PropertyRecurringExpenses] = Field(default_factory=list)
