"""
Recurring Generation Engine

Copies every expense flagged `isRecurring` from a source month into a
target month, for every property.

FLOW (per property, strictly sequential):
1. Read the source month's items, keep the recurring ones
2. Read the target month's items (duplicate detection)
3. For each recurring item: skip it if the target already holds the
   same obligation, otherwise build a fresh copy for the new month
4. Persist the copy (unless dry run)

DESIGN DECISION: Properties are processed one after another, never in
parallel. This bounds store load and keeps the duplicate-check reads
and the writes of one property from interleaving.

DESIGN DECISION: Failures are recovered locally. A malformed historical
record or a rejected write is recorded in the result and the run moves
on. Only "no properties at all" fails the run as a whole.

CRITICAL: Duplicate detection is read-compare-write and NOT atomic.
Generated items are therefore written under a deterministic id
(template id + target period), so a concurrent or retried run that
races past the comparison is still stopped by the store. A conflict
with this run's own earlier attempt (a retried create whose first try
timed out after writing) carries the same lineage stamp and still
counts as created.

Incomes are NEVER generated. They need manual reconciliation.
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Optional
from datetime import datetime
from uuid import UUID

import structlog

from rental_ledger.audit import AuditLogger, create_correlation_id
from rental_ledger.models.expense import (
    PAYMENT_STATUS_FIELDS,
    ExpenseItem,
    GeneratedItemRecord,
    GenerationErrorRecord,
    GenerationLineage,
    GenerationOptions,
    GenerationResult,
    GenerationSummary,
    PropertyGenerationResult,
)
from rental_ledger.periods.codec import (
    Period,
    add_one_month,
    current_period,
    resolve_generation_periods,
    utc_now,
)
from rental_ledger.services.storage import (
    DocumentStoreInterface,
    DuplicateError,
    EntityKind,
    Location,
    resolve,
)


logger = structlog.get_logger(__name__)


class GenerationError(Exception):
    """Base exception for recoverable generation failures."""
    pass


class ItemWriteFailure(GenerationError):
    """The store rejected the write of a generated item."""
    pass


class PropertyProcessingFailure(GenerationError):
    """A property's source or target items could not be read."""
    pass


def _normalize_amount(value: Any) -> Any:
    """Compare amounts numerically: 500, 500.0 and "500.00" are the same."""
    if isinstance(value, bool):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return value if isinstance(value, (str, int, float)) else repr(value)


def dedup_key(document: dict[str, Any]) -> tuple[Any, Any]:
    """
    Identity of an expense for duplicate detection: (description, amount).

    NOTE: This is a heuristic. Two unrelated items with the same text and
    amount collide, and editing a description defeats it. The template id
    check in the engine covers the second case.
    """
    return document.get("description"), _normalize_amount(document.get("amount"))


def build_generated_item(
    source: dict[str, Any],
    item: ExpenseItem,
    source_period: Period,
    target_period: Period,
    property_id: str,
    generated_at: datetime,
) -> dict[str, Any]:
    """
    Build the stored document for a new period from a source document.

    - every field of the source is copied (except its id)
    - payment-status fields are dropped
    - year/month point at the target period
    - dueDate moves forward exactly one month, if present
    - the item is active, freshly timestamped, and carries lineage
    """
    data = {key: value for key, value in source.items() if key != "id"}

    for field in PAYMENT_STATUS_FIELDS:
        data.pop(field, None)

    data["year"] = target_period.year
    data["month"] = target_period.month

    if item.due_date is not None:
        data["dueDate"] = add_one_month(item.due_date).isoformat()
    else:
        data.pop("dueDate", None)

    stamp = generated_at.isoformat()
    data["isActive"] = True
    data["createdAt"] = stamp
    data["updatedAt"] = stamp

    data["generatedFrom"] = GenerationLineage(
        source_doc_id=item.id,
        source_year=source_period.year,
        source_month=source_period.month,
        property_id=property_id,
        generated_at=generated_at,
    ).to_dict()
    data["recurringTemplateId"] = item.template_id

    return data


class RecurringGenerationEngine:
    """
    Generates next month's recurring expenses for every property.

    The current date is injected through `clock`, so runs are
    deterministic under test.
    """

    def __init__(
        self,
        store: DocumentStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._store = store
        self._audit_logger = audit_logger
        self._clock = clock

    async def generate(
        self,
        options: Optional[GenerationOptions] = None,
        is_user_action: bool = False,
    ) -> GenerationResult:
        """
        Run recurring generation.

        Args:
            options: Source/target overrides and dry-run flag
            is_user_action: True when an operator triggered the run

        Returns:
            GenerationResult. `success` is False only if no properties
            could be found.

        Raises:
            InvalidPeriod: If the resolved source/target is invalid
        """
        options = options or GenerationOptions()
        source, target = resolve_generation_periods(
            current_period(self._clock),
            source_year=options.source_year,
            source_month=options.source_month,
            target_year=options.target_year,
            target_month=options.target_month,
        )
        run_id = create_correlation_id()

        summary = GenerationSummary(
            source_year=source.year,
            source_month=source.month,
            target_year=target.year,
            target_month=target.month,
            source_period=source.key,
            target_period=target.key,
            dry_run=options.dry_run,
            timestamp=self._clock(),
        )

        logger.info(
            "generation_started",
            run_id=str(run_id),
            source=source.key,
            target=target.key,
            dry_run=options.dry_run,
        )
        if self._audit_logger:
            await self._audit_logger.log_generation_started(
                run_id=run_id,
                source_period=source.key,
                target_period=target.key,
                dry_run=options.dry_run,
                is_user_action=is_user_action,
            )

        # Step 1: every property
        try:
            properties = await self._store.get_documents(resolve(EntityKind.PROPERTIES))
        except Exception as e:
            return await self._fail(run_id, summary, f"Could not list properties: {e}")

        if not properties:
            return await self._fail(run_id, summary, "No properties found")

        result = GenerationResult(run_id=run_id, success=True, summary=summary)

        # Step 2: one property at a time
        for prop in properties:
            outcome = PropertyGenerationResult(
                property_id=prop["id"],
                property_name=prop.get("name"),
            )
            try:
                await self._generate_for_property(
                    outcome, source, target, options.dry_run, run_id, result.items
                )
                summary.properties_processed += 1
            except Exception as e:
                logger.error("property_processing_failed", property_id=outcome.property_id, error=str(e))
                outcome.errors.append(GenerationErrorRecord(
                    kind="property",
                    property_id=outcome.property_id,
                    error=str(e),
                    error_type=type(e).__name__,
                ))
                if self._audit_logger:
                    await self._audit_logger.log_property_failed(
                        run_id=run_id,
                        property_id=outcome.property_id,
                        error_message=str(e),
                    )

            result.properties.append(outcome)
            result.created += outcome.created
            result.skipped += outcome.skipped
            result.errors.extend(outcome.errors)

        # Step 3: totals
        summary.total_created = result.created
        summary.total_skipped = result.skipped
        summary.total_errors = len(result.errors)

        logger.info(
            "generation_completed",
            run_id=str(run_id),
            created=result.created,
            skipped=result.skipped,
            errors=summary.total_errors,
        )
        if self._audit_logger:
            await self._audit_logger.log_generation_completed(
                run_id=run_id,
                created=result.created,
                skipped=result.skipped,
                errors=summary.total_errors,
                properties_processed=summary.properties_processed,
                dry_run=options.dry_run,
            )

        return result

    async def _fail(self, run_id: UUID, summary: GenerationSummary, error: str) -> GenerationResult:
        logger.error("generation_failed", run_id=str(run_id), error=error)
        if self._audit_logger:
            await self._audit_logger.log_generation_failed(run_id=run_id, error_message=error)
        return GenerationResult(run_id=run_id, success=False, error=error, summary=summary)

    @staticmethod
    def _index_existing(
        existing: list[dict[str, Any]],
        property_id: str,
    ) -> tuple[set, set]:
        """
        Duplicate-detection sets for the target period.

        A target record whose description or template id can't be used
        as a key (e.g. a map) is left out of the index instead of
        failing the whole property.
        """
        keys: set = set()
        templates: set = set()
        for doc in existing:
            try:
                keys.add(dedup_key(doc))
            except TypeError as e:
                logger.warning(
                    "target_item_ignored",
                    property_id=property_id,
                    expense_id=doc.get("id"),
                    field="description",
                    error=str(e),
                )
            template = doc.get("recurringTemplateId")
            if not template:
                continue
            try:
                templates.add(template)
            except TypeError as e:
                logger.warning(
                    "target_item_ignored",
                    property_id=property_id,
                    expense_id=doc.get("id"),
                    field="recurringTemplateId",
                    error=str(e),
                )
        return keys, templates

    async def _is_own_write(
        self,
        collection: Location,
        document_id: str,
        data: dict[str, Any],
    ) -> bool:
        """
        True if the conflicting document is the one this run just wrote.

        A create retried after a timeout can conflict with its own first
        attempt. That document carries this run's exact lineage stamp;
        anything else was written by another run.
        """
        try:
            stored = await self._store.get_document(collection.child(document_id))
        except Exception as e:
            logger.warning("conflict_check_failed", document_id=document_id, error=str(e))
            return False
        return stored is not None and stored.get("generatedFrom") == data["generatedFrom"]

    async def _generate_for_property(
        self,
        outcome: PropertyGenerationResult,
        source: Period,
        target: Period,
        dry_run: bool,
        run_id: UUID,
        generated: list[GeneratedItemRecord],
    ) -> None:
        """
        Generate one property's recurring items.

        Item failures are recorded on `outcome`. Read failures raise
        PropertyProcessingFailure for the caller to record.
        """
        property_id = outcome.property_id
        source_location = resolve(
            EntityKind.EXPENSES, property_id, year=source.year, month=source.month
        )
        target_location = resolve(
            EntityKind.EXPENSES, property_id, year=target.year, month=target.month
        )

        try:
            source_items = await self._store.get_documents(source_location)
        except Exception as e:
            raise PropertyProcessingFailure(
                f"Could not read {source.key} expenses of property {property_id}: {e}"
            ) from e

        recurring = [doc for doc in source_items if doc.get("isRecurring") is True]
        if not recurring:
            logger.info("no_recurring_expenses", property_id=property_id, period=source.key)
            return

        try:
            existing = await self._store.get_documents(target_location)
        except Exception as e:
            raise PropertyProcessingFailure(
                f"Could not read {target.key} expenses of property {property_id}: {e}"
            ) from e

        existing_keys, existing_templates = self._index_existing(existing, property_id)

        for raw in recurring:
            try:
                item = ExpenseItem.model_validate(raw)

                if dedup_key(raw) in existing_keys or item.template_id in existing_templates:
                    logger.info(
                        "expense_already_exists",
                        property_id=property_id,
                        expense_id=item.id,
                        period=target.key,
                    )
                    outcome.skipped += 1
                    continue

                data = build_generated_item(
                    raw, item, source, target, property_id, self._clock()
                )
                document_id = f"{item.template_id}_{target.key}"

                if not dry_run:
                    try:
                        document_id = await self._store.create_document(
                            target_location, data, document_id=document_id
                        )
                    except DuplicateError:
                        if not await self._is_own_write(target_location, document_id, data):
                            logger.info(
                                "expense_already_exists",
                                property_id=property_id,
                                expense_id=item.id,
                                document_id=document_id,
                            )
                            outcome.skipped += 1
                            continue
                    except Exception as e:
                        raise ItemWriteFailure(f"Could not write to {target_location.path}: {e}") from e

                outcome.created += 1
                generated.append(GeneratedItemRecord(
                    property_id=property_id,
                    source_id=item.id,
                    document_id=document_id,
                    description=item.description,
                    amount=raw.get("amount"),
                    persisted=not dry_run,
                ))
                logger.info(
                    "expense_generated",
                    property_id=property_id,
                    expense_id=item.id,
                    document_id=document_id,
                    period=target.key,
                    dry_run=dry_run,
                )

            except Exception as e:
                description = raw.get("description") or "No description"
                logger.warning(
                    "expense_generation_failed",
                    property_id=property_id,
                    expense_id=raw.get("id"),
                    error=str(e),
                )
                outcome.errors.append(GenerationErrorRecord(
                    kind="expense",
                    property_id=property_id,
                    item_id=raw.get("id"),
                    description=str(description),
                    error=str(e),
                    error_type=type(e).__name__,
                ))
                if self._audit_logger:
                    await self._audit_logger.log_expense_failed(
                        run_id=run_id,
                        property_id=property_id,
                        expense_id=raw.get("id"),
                        description=str(description),
                        error_message=str(e),
                    )
