"""Recurring expense generation, reporting and flag management."""

from rental_ledger.recurring.engine import (
    GenerationError,
    ItemWriteFailure,
    PropertyProcessingFailure,
    RecurringGenerationEngine,
    build_generated_item,
    dedup_key,
)
from rental_ledger.recurring.flags import RecurringFlagService
from rental_ledger.recurring.summary import PeriodSummaryBuilder

__all__ = [
    "GenerationError",
    "ItemWriteFailure",
    "PeriodSummaryBuilder",
    "PropertyProcessingFailure",
    "RecurringFlagService",
    "RecurringGenerationEngine",
    "build_generated_item",
    "dedup_key",
]
