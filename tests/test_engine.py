"""
Tests for the recurring generation engine.

All runs use the in-memory store and a clock fixed at 2025-06-10,
so the default run copies 2025-06 into 2025-07.
"""

import pytest
from decimal import Decimal

from rental_ledger.models.expense import ExpenseItem, GenerationOptions
from rental_ledger.periods import Period
from rental_ledger.recurring import (
    RecurringGenerationEngine,
    build_generated_item,
    dedup_key,
)
from rental_ledger.services.storage import (
    DuplicateError,
    EntityKind,
    InMemoryDocumentStore,
    resolve,
)


@pytest.fixture
def engine(store, clock):
    return RecurringGenerationEngine(store, clock=clock)


class ConflictAfterWriteStore(InMemoryDocumentStore):
    """Stores the document, then reports a conflict (a retried create whose first try landed)."""

    async def create_document(self, collection, data, document_id=None):
        await super().create_document(collection, data, document_id=document_id)
        raise DuplicateError(f"Document already exists: {collection.path}/{document_id}")


@pytest.fixture
def rent_and_repair(ledger):
    ledger.add_property("p1", "Calle Mayor 1")
    ledger.add_expense("p1", "2025-06", "rent", description="Rent", amount=500, isRecurring=True)
    ledger.add_expense("p1", "2025-06", "repair", description="Repair", amount=80, isRecurring=False)
    return ledger


class TestBasicGeneration:
    """A recurring item is copied, a one-off item is not."""

    @pytest.mark.asyncio
    async def test_creates_only_recurring_items(self, engine, rent_and_repair):
        result = await engine.generate()

        assert result.success
        assert result.created == 1
        assert result.skipped == 0
        assert result.errors == []

        items = rent_and_repair.items("p1", "2025-07")
        assert [i["description"] for i in items] == ["Rent"]

    @pytest.mark.asyncio
    async def test_generated_item_state(self, engine, rent_and_repair, now):
        await engine.generate()

        [item] = rent_and_repair.items("p1", "2025-07")
        assert item["id"] == "rent_2025-07"
        assert item["amount"] == 500
        assert item["year"] == 2025
        assert item["month"] == 7
        assert item["isActive"] is True
        assert item["isRecurring"] is True
        assert item["recurringTemplateId"] == "rent"
        assert item["createdAt"] == now.isoformat()
        assert item["updatedAt"] == now.isoformat()
        assert "paidDate" not in item

    @pytest.mark.asyncio
    async def test_generated_item_carries_lineage(self, engine, rent_and_repair):
        await engine.generate()

        [item] = rent_and_repair.items("p1", "2025-07")
        lineage = item["generatedFrom"]
        assert lineage["sourceDocId"] == "rent"
        assert lineage["sourceYear"] == 2025
        assert lineage["sourceMonth"] == 6
        assert lineage["propertyId"] == "p1"

    @pytest.mark.asyncio
    async def test_source_items_are_untouched(self, engine, rent_and_repair):
        before = rent_and_repair.items("p1", "2025-06")
        await engine.generate()
        assert rent_and_repair.items("p1", "2025-06") == before

    @pytest.mark.asyncio
    async def test_summary_block(self, engine, rent_and_repair, now):
        result = await engine.generate()

        summary = result.summary
        assert summary.source_period == "2025-06"
        assert summary.target_period == "2025-07"
        assert summary.properties_processed == 1
        assert summary.total_created == 1
        assert summary.total_errors == 0
        assert summary.dry_run is False
        assert summary.timestamp == now

    @pytest.mark.asyncio
    async def test_result_lists_generated_items(self, engine, rent_and_repair):
        result = await engine.generate()

        [record] = result.items
        assert record.property_id == "p1"
        assert record.source_id == "rent"
        assert record.document_id == "rent_2025-07"
        assert record.persisted is True

    @pytest.mark.asyncio
    async def test_only_literal_true_counts_as_recurring(self, engine, ledger):
        ledger.add_property("p1")
        ledger.add_expense("p1", "2025-06", "a", description="A", amount=1, isRecurring="true")
        ledger.add_expense("p1", "2025-06", "b", description="B", amount=2, isRecurring=1)
        ledger.add_expense("p1", "2025-06", "c", description="C", amount=3)

        result = await engine.generate()

        assert result.success
        assert result.created == 0
        assert ledger.items("p1", "2025-07") == []

    @pytest.mark.asyncio
    async def test_property_without_recurring_items_is_not_an_error(self, engine, ledger):
        ledger.add_property("p1")

        result = await engine.generate()

        assert result.success
        assert result.created == 0
        assert result.errors == []
        assert result.summary.properties_processed == 1

    @pytest.mark.asyncio
    async def test_incomes_are_never_generated(self, engine, rent_and_repair, store):
        incomes = resolve(EntityKind.INCOMES, "p1", unit_id="u1")
        store.seed(incomes, "2025-06", {"amount": 900, "isRecurring": True})

        await engine.generate()

        assert [d["id"] for d in store.snapshot(incomes)] == ["2025-06"]


class TestFieldRewriting:
    """How the copy differs from its source."""

    @pytest.mark.asyncio
    async def test_due_date_moves_one_month(self, engine, ledger):
        ledger.add_property("p1")
        ledger.add_expense(
            "p1", "2025-06", "tax", description="Tax", amount=120,
            isRecurring=True, dueDate="2025-06-15",
        )

        await engine.generate()

        [item] = ledger.items("p1", "2025-07")
        assert item["dueDate"] == "2025-07-15"

    @pytest.mark.asyncio
    async def test_missing_due_date_stays_missing(self, engine, rent_and_repair):
        await engine.generate()

        [item] = rent_and_repair.items("p1", "2025-07")
        assert "dueDate" not in item

    @pytest.mark.asyncio
    async def test_payment_status_is_dropped(self, engine, ledger):
        ledger.add_property("p1")
        ledger.add_expense(
            "p1", "2025-06", "water", description="Water", amount=30, isRecurring=True,
            paidDate="2025-06-02", paymentDate="2025-06-02",
            receipt="https://example.com/r.pdf", referenceNumber="TX-1",
            category="utilities", isActive=False,
        )

        await engine.generate()

        [item] = ledger.items("p1", "2025-07")
        for field in ("paidDate", "paymentDate", "receipt", "referenceNumber"):
            assert field not in item
        assert item["category"] == "utilities"
        assert item["isActive"] is True

    def test_build_generated_item_ignores_source_id(self, now):
        raw = {"id": "rent", "description": "Rent", "amount": 500, "isRecurring": True}
        data = build_generated_item(
            raw, ExpenseItem.model_validate(raw), Period(2025, 6), Period(2025, 7), "p1", now
        )

        assert "id" not in data
        assert raw == {"id": "rent", "description": "Rent", "amount": 500, "isRecurring": True}


class TestDuplicateDetection:
    """Re-runs and existing target items."""

    @pytest.mark.asyncio
    async def test_second_run_skips(self, engine, rent_and_repair):
        await engine.generate()
        second = await engine.generate()

        assert second.success
        assert second.created == 0
        assert second.skipped == 1
        assert len(rent_and_repair.items("p1", "2025-07")) == 1

    @pytest.mark.asyncio
    async def test_amounts_compare_numerically(self, engine, rent_and_repair):
        rent_and_repair.add_expense("p1", "2025-07", "manual", description="Rent", amount="500.00")

        result = await engine.generate()

        assert result.created == 0
        assert result.skipped == 1

    @pytest.mark.asyncio
    async def test_different_amount_is_not_a_duplicate(self, engine, rent_and_repair):
        rent_and_repair.add_expense("p1", "2025-07", "manual", description="Rent", amount=550)

        result = await engine.generate()

        assert result.created == 1

    @pytest.mark.asyncio
    async def test_template_id_catches_edited_description(self, engine, rent_and_repair):
        rent_and_repair.add_expense(
            "p1", "2025-07", "edited", description="Monthly rent", amount=500,
            recurringTemplateId="rent",
        )

        result = await engine.generate()

        assert result.created == 0
        assert result.skipped == 1

    @pytest.mark.asyncio
    async def test_existing_document_id_counts_as_skipped(self, engine, rent_and_repair):
        """A concurrent run that already wrote the item is stopped by the store."""
        rent_and_repair.add_expense("p1", "2025-07", "rent_2025-07", description="Other", amount=1)

        result = await engine.generate()

        assert result.created == 0
        assert result.skipped == 1
        assert result.errors == []

    @pytest.mark.asyncio
    async def test_conflict_with_own_retried_write_counts_as_created(self, clock):
        """A create that landed before its retry conflicted is still this run's item."""
        store = ConflictAfterWriteStore()
        store.seed(resolve(EntityKind.PROPERTIES), "p1", {"name": "Calle Mayor 1"})
        store.seed(
            resolve(EntityKind.EXPENSES, "p1", year=2025, month=6),
            "rent",
            {"description": "Rent", "amount": 500, "isRecurring": True},
        )

        result = await RecurringGenerationEngine(store, clock=clock).generate()

        assert result.created == 1
        assert result.skipped == 0
        assert result.errors == []
        [item] = store.snapshot(resolve(EntityKind.EXPENSES, "p1", year=2025, month=7))
        assert item["id"] == "rent_2025-07"
        assert item["generatedFrom"]["sourceDocId"] == "rent"

    @pytest.mark.asyncio
    async def test_malformed_target_records_do_not_block_the_property(self, engine, ledger):
        ledger.add_property("p1")
        ledger.add_expense("p1", "2025-06", "light", description="Luz", amount=40, isRecurring=True)
        ledger.add_expense("p1", "2025-06", "water", description="Agua", amount=25, isRecurring=True)
        ledger.add_expense("p1", "2025-07", "odd", description={"es": "Luz"}, amount=40)
        ledger.add_expense("p1", "2025-07", "odder", description="X", amount=1, recurringTemplateId=["light"])

        result = await engine.generate()

        assert result.success
        assert result.created == 2
        assert result.errors == []
        assert result.summary.properties_processed == 1
        ids = {i["id"] for i in ledger.items("p1", "2025-07")}
        assert {"light_2025-07", "water_2025-07"} <= ids

    @pytest.mark.asyncio
    async def test_chain_keeps_template_id(self, engine, rent_and_repair):
        await engine.generate()
        await engine.generate(GenerationOptions(source_year=2025, source_month=7))

        [item] = rent_and_repair.items("p1", "2025-08")
        assert item["id"] == "rent_2025-08"
        assert item["recurringTemplateId"] == "rent"
        assert item["generatedFrom"]["sourceDocId"] == "rent_2025-07"
        assert item["generatedFrom"]["sourceMonth"] == 7

    def test_dedup_key_normalizes_amounts(self):
        assert dedup_key({"description": "Rent", "amount": 500}) == dedup_key(
            {"description": "Rent", "amount": "500.00"}
        )
        assert dedup_key({"description": "Rent", "amount": 500.5})[1] == Decimal("500.5")


class TestDryRun:
    """Dry runs report without writing."""

    @pytest.mark.asyncio
    async def test_dry_run_writes_nothing(self, engine, rent_and_repair):
        result = await engine.generate(GenerationOptions(dry_run=True))

        assert result.created == 1
        assert result.summary.dry_run is True
        assert result.items[0].persisted is False
        assert rent_and_repair.items("p1", "2025-07") == []

    @pytest.mark.asyncio
    async def test_dry_run_matches_live_counts(self, engine, rent_and_repair):
        rent_and_repair.add_expense("p1", "2025-06", "ins", description="Insurance", amount=40, isRecurring=True)
        rent_and_repair.add_expense("p1", "2025-07", "manual", description="Insurance", amount=40)

        dry = await engine.generate(GenerationOptions(dry_run=True))
        live = await engine.generate()

        assert (dry.created, dry.skipped) == (live.created, live.skipped) == (1, 1)


class TestPeriodSelection:
    """Source and target overrides."""

    @pytest.mark.asyncio
    async def test_explicit_target(self, engine, rent_and_repair):
        result = await engine.generate(GenerationOptions(
            source_year=2025, source_month=6, target_year=2025, target_month=9,
        ))

        assert result.summary.target_period == "2025-09"
        [item] = rent_and_repair.items("p1", "2025-09")
        assert item["month"] == 9
        assert item["id"] == "rent_2025-09"

    @pytest.mark.asyncio
    async def test_december_rolls_into_january(self, engine, ledger):
        ledger.add_property("p1")
        ledger.add_expense("p1", "2025-12", "rent", description="Rent", amount=500, isRecurring=True)

        result = await engine.generate(GenerationOptions(source_year=2025, source_month=12))

        assert result.summary.target_period == "2026-01"
        [item] = ledger.items("p1", "2026-01")
        assert (item["year"], item["month"]) == (2026, 1)


class TestFailures:
    """Partial failures are recorded, the run continues."""

    @pytest.mark.asyncio
    async def test_no_properties_fails_the_run(self, engine):
        result = await engine.generate()

        assert not result.success
        assert result.error == "No properties found"
        assert result.created == 0

    @pytest.mark.asyncio
    async def test_property_listing_failure_is_distinct(self, engine, rent_and_repair, store):
        store.fail("get_documents", resolve(EntityKind.PROPERTIES))

        result = await engine.generate()

        assert not result.success
        assert result.error.startswith("Could not list properties")

    @pytest.mark.asyncio
    async def test_malformed_item_is_recorded(self, engine, rent_and_repair):
        rent_and_repair.add_expense("p1", "2025-06", "broken", description="Broken", amount="abc", isRecurring=True)

        result = await engine.generate()

        assert result.success
        assert result.created == 1
        [error] = result.errors
        assert error.kind == "expense"
        assert error.property_id == "p1"
        assert error.item_id == "broken"
        assert error.description == "Broken"

    @pytest.mark.asyncio
    async def test_null_description_and_active_flag_are_still_copied(self, engine, ledger):
        ledger.add_property("p1")
        ledger.add_expense(
            "p1", "2025-06", "fee", description=None, amount=15, isActive=None, isRecurring=True
        )

        result = await engine.generate()

        assert result.created == 1
        assert result.errors == []
        [item] = ledger.items("p1", "2025-07")
        assert item["description"] is None
        assert item["isActive"] is True
        assert result.items[0].description is None

    @pytest.mark.asyncio
    async def test_unreadable_due_date_is_recorded(self, engine, ledger):
        ledger.add_property("p1")
        ledger.add_expense("p1", "2025-06", "x", description="X", amount=1, isRecurring=True, dueDate="soon")

        result = await engine.generate()

        assert result.created == 0
        assert result.errors[0].item_id == "x"

    @pytest.mark.asyncio
    async def test_write_failure_is_recorded(self, engine, rent_and_repair, store):
        store.fail("create_document", rent_and_repair.expenses("p1", "2025-07"))

        result = await engine.generate()

        assert result.success
        assert result.created == 0
        [error] = result.errors
        assert error.kind == "expense"
        assert error.error_type == "ItemWriteFailure"

    @pytest.mark.asyncio
    async def test_property_failure_does_not_stop_others(self, engine, rent_and_repair, store):
        rent_and_repair.add_property("p2")
        rent_and_repair.add_expense("p2", "2025-06", "fee", description="Fee", amount=10, isRecurring=True)
        store.fail("get_documents", rent_and_repair.expenses("p1", "2025-06"))

        result = await engine.generate()

        assert result.success
        assert result.created == 1
        assert result.summary.properties_processed == 1
        [error] = result.errors
        assert error.kind == "property"
        assert error.property_id == "p1"
        assert error.error_type == "PropertyProcessingFailure"
        assert len(rent_and_repair.items("p2", "2025-07")) == 1


class TestAudit:
    """Runs are audited when an audit logger is given."""

    @pytest.mark.asyncio
    async def test_successful_run_events(self, store, clock, audit_logger, audit_storage, audit_types, rent_and_repair):
        engine = RecurringGenerationEngine(store, audit_logger, clock)

        result = await engine.generate()

        assert audit_types(audit_storage) == ["generation_started", "generation_completed"]
        completed = audit_storage.append_event.await_args_list[-1].args[0]
        assert completed.correlation_id == result.run_id
        assert completed.details["created"] == 1

    @pytest.mark.asyncio
    async def test_failed_run_events(self, store, clock, audit_logger, audit_storage, audit_types):
        engine = RecurringGenerationEngine(store, audit_logger, clock)

        await engine.generate()

        assert audit_types(audit_storage) == ["generation_started", "generation_failed"]

    @pytest.mark.asyncio
    async def test_item_failure_event(self, store, clock, audit_logger, audit_storage, audit_types, rent_and_repair):
        rent_and_repair.add_expense("p1", "2025-06", "broken", description="Broken", isRecurring=True)
        engine = RecurringGenerationEngine(store, audit_logger, clock)

        await engine.generate()

        assert "expense_generation_failed" in audit_types(audit_storage)

    @pytest.mark.asyncio
    async def test_audit_storage_failure_does_not_break_run(self, store, clock, audit_logger, audit_storage, rent_and_repair):
        audit_storage.append_event.side_effect = RuntimeError("sheet down")
        engine = RecurringGenerationEngine(store, audit_logger, clock)

        result = await engine.generate()

        assert result.success
        assert result.created == 1
