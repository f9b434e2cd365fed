"""
Data Models Package

This package contains all Pydantic models used in the Rental Ledger system.
All data flowing through the system must conform to these schemas.
"""

from rental_ledger.models.expense import (
    PAYMENT_STATUS_FIELDS,
    ExpenseDigest,
    ExpenseItem,
    GeneratedItemRecord,
    GenerationErrorRecord,
    GenerationLineage,
    GenerationOptions,
    GenerationResult,
    GenerationSummary,
    PeriodRef,
    PeriodSummary,
    PropertyGenerationResult,
    PropertyPeriodSummary,
    PropertyRecurringExpenses,
    RecurringListing,
    RecurringToggleResult,
    ValidationIssue,
    ValidationResult,
)
from rental_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Expense models
    "PAYMENT_STATUS_FIELDS",
    "ExpenseDigest",
    "ExpenseItem",
    "GeneratedItemRecord",
    "GenerationErrorRecord",
    "GenerationLineage",
    "GenerationOptions",
    "GenerationResult",
    "GenerationSummary",
    "PeriodRef",
    "PeriodSummary",
    "PropertyGenerationResult",
    "PropertyPeriodSummary",
    "PropertyRecurringExpenses",
    "RecurringListing",
    "RecurringToggleResult",
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
