"""
Period Summary & Validation

Read-only reporting used before and after a generation run:
- summarize(): how many items, and how many recurring, each property has
- validate(): an advisory check of a proposed source/target pair

DESIGN DECISION: Validation is advisory. It reserves nothing, so the
state it saw can change before generation actually runs.
"""

import asyncio
from datetime import datetime
from typing import Any, Callable, Optional

import structlog

from rental_ledger.audit import AuditLogger
from rental_ledger.models.expense import (
    ExpenseDigest,
    GenerationOptions,
    PeriodRef,
    PeriodSummary,
    PropertyPeriodSummary,
    ValidationIssue,
    ValidationResult,
)
from rental_ledger.periods.codec import (
    current_period,
    make_period,
    resolve_generation_periods,
    utc_now,
)
from rental_ledger.services.storage import DocumentStoreInterface, EntityKind, resolve


logger = structlog.get_logger(__name__)

UNNAMED_PROPERTY = "Unnamed"


def _digest(document: dict[str, Any]) -> ExpenseDigest:
    return ExpenseDigest(
        id=document["id"],
        description=document.get("description"),
        amount=document.get("amount"),
        is_recurring=document.get("isRecurring") is True,
    )


class PeriodSummaryBuilder:
    """Builds period summaries and pre-generation validations."""

    def __init__(
        self,
        store: DocumentStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._store = store
        self._audit_logger = audit_logger
        self._clock = clock

    async def summarize(self, year: int, month: int) -> PeriodSummary:
        """
        Summarize one period across all properties.

        Args:
            year: Period year
            month: Period month (1-12)

        Returns:
            PeriodSummary. A property whose items can't be read appears
            with zero counts and an error. If the property list itself
            can't be read, success is False.

        Raises:
            InvalidPeriod: If year/month is invalid
        """
        period = make_period(year, month)
        summary = PeriodSummary(year=period.year, month=period.month, period=period.key)

        try:
            properties = await self._store.get_documents(resolve(EntityKind.PROPERTIES))
        except Exception as e:
            logger.error("summary_properties_failed", period=period.key, error=str(e))
            summary.success = False
            summary.error = f"Could not list properties: {e}"
            return summary

        summary.properties = len(properties)

        for prop in properties:
            entry = PropertyPeriodSummary(
                property_id=prop["id"],
                property_name=prop.get("name") or UNNAMED_PROPERTY,
            )
            location = resolve(
                EntityKind.EXPENSES, prop["id"], year=period.year, month=period.month
            )
            try:
                documents = await self._store.get_documents(location)
            except Exception as e:
                logger.warning("summary_property_failed", property_id=prop["id"], error=str(e))
                entry.error = str(e)
                summary.properties_summary.append(entry)
                continue

            entry.expenses = [_digest(doc) for doc in documents]
            entry.total_expenses = len(entry.expenses)
            entry.recurring_expenses = sum(1 for d in entry.expenses if d.is_recurring)

            summary.total_expenses += entry.total_expenses
            summary.total_recurring_expenses += entry.recurring_expenses
            summary.properties_summary.append(entry)

        return summary

    async def validate(self, options: Optional[GenerationOptions] = None) -> ValidationResult:
        """
        Check whether generating from source into target makes sense.

        Errors (block generation):
        - the source period could not be summarized
        - target == source

        Warnings:
        - the source has no recurring items
        - the target already has items
        - the target precedes the source
        """
        options = options or GenerationOptions()
        source, target = resolve_generation_periods(
            current_period(self._clock),
            source_year=options.source_year,
            source_month=options.source_month,
            target_year=options.target_year,
            target_month=options.target_month,
        )

        source_summary, target_summary = await asyncio.gather(
            self.summarize(source.year, source.month),
            self.summarize(target.year, target.month),
        )

        issues: list[ValidationIssue] = []

        if not source_summary.success:
            issues.append(ValidationIssue(
                code="source_unavailable",
                message=f"Could not read source period {source.key}: {source_summary.error}",
                severity="error",
            ))
        if target == source:
            issues.append(ValidationIssue(
                code="same_period",
                message="Target period cannot be the same as the source period",
                severity="error",
            ))

        if source_summary.success and source_summary.total_recurring_expenses == 0:
            issues.append(ValidationIssue(
                code="no_recurring_items",
                message=f"No recurring expenses found in {source.key}",
                severity="warning",
            ))
        if not target_summary.success:
            issues.append(ValidationIssue(
                code="target_unavailable",
                message=f"Could not read target period {target.key}: {target_summary.error}",
                severity="warning",
            ))
        elif target_summary.total_expenses > 0:
            issues.append(ValidationIssue(
                code="target_has_items",
                message=(
                    f"{target.key} already has {target_summary.total_expenses} expense(s); "
                    "duplicates will be skipped"
                ),
                severity="warning",
            ))
        if target < source:
            issues.append(ValidationIssue(
                code="target_before_source",
                message=f"Target period {target.key} is before source period {source.key}",
                severity="warning",
            ))

        result = ValidationResult(
            can_generate=not any(i.severity == "error" for i in issues),
            source=PeriodRef.of(source),
            target=PeriodRef.of(target),
            source_summary=source_summary,
            target_summary=target_summary,
            issues=issues,
        )

        logger.info(
            "period_validated",
            source=source.key,
            target=target.key,
            can_generate=result.can_generate,
            issues=len(issues),
        )
        if self._audit_logger:
            await self._audit_logger.log_period_validated(
                source_period=source.key,
                target_period=target.key,
                can_generate=result.can_generate,
                issues=[i.to_dict() for i in issues],
            )

        return result
