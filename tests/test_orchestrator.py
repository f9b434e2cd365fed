"""Tests for the orchestrator flow and component factory."""

import pytest

from rental_ledger.config import get_settings
from rental_ledger.models.expense import GenerationOptions
from rental_ledger.orchestrator import PeriodOutOfRange, RecurringFlow, create_app_components
from rental_ledger.periods import InvalidPeriod
from rental_ledger.services.storage import EntityKind, InMemoryDocumentStore, MissingAddressParameter


@pytest.fixture
def flow(store, clock, audit_logger):
    return RecurringFlow(store, audit_logger, clock)


@pytest.fixture
def seeded(ledger):
    ledger.add_property("p1", "Calle Mayor 1")
    ledger.add_expense("p1", "2025-06", "rent", description="Rent", amount=500, isRecurring=True)
    return ledger


class TestYearWindow:
    """Caller-supplied years must fall inside 2020-2030 by default."""

    @pytest.mark.asyncio
    async def test_year_before_window_rejected(self, flow, seeded):
        with pytest.raises(PeriodOutOfRange):
            await flow.generate(GenerationOptions(source_year=2019, source_month=12))

    @pytest.mark.asyncio
    async def test_target_after_window_rejected(self, flow, seeded):
        with pytest.raises(PeriodOutOfRange):
            await flow.validate(GenerationOptions(target_year=2031, target_month=1))

    @pytest.mark.asyncio
    async def test_out_of_range_is_an_invalid_period(self, flow):
        with pytest.raises(InvalidPeriod):
            await flow.summarize(1999, 1)

    @pytest.mark.asyncio
    async def test_set_recurring_outside_window_rejected(self, flow, seeded):
        with pytest.raises(PeriodOutOfRange):
            await flow.set_recurring("p1", 2031, 1, "rent", True)

    @pytest.mark.asyncio
    async def test_list_recurring_outside_window_rejected(self, flow, seeded):
        with pytest.raises(PeriodOutOfRange):
            await flow.list_recurring(2019, 12)
        with pytest.raises(PeriodOutOfRange):
            await flow.list_recurring(2019, 12, property_id="p1")

    @pytest.mark.asyncio
    async def test_custom_window(self, store, clock, seeded):
        flow = RecurringFlow(store, clock=clock, min_year=2025, max_year=2025)
        with pytest.raises(PeriodOutOfRange):
            await flow.generate(GenerationOptions(source_year=2024, source_month=6))

    @pytest.mark.asyncio
    async def test_defaults_are_not_window_checked(self, store, seeded):
        flow = RecurringFlow(store, min_year=2020, max_year=2020)
        # The clock-derived period is never a caller-supplied year
        result = await flow.generate(GenerationOptions(dry_run=True))
        assert result.summary is not None


class TestFlowOperations:
    """The flow delegates to the engine, builder, enumerator and flags."""

    @pytest.mark.asyncio
    async def test_generate(self, flow, seeded, audit_storage, audit_types):
        result = await flow.generate(is_user_action=True)

        assert result.success
        assert result.created == 1
        started = audit_storage.append_event.await_args_list[0].args[0]
        assert started.is_user_action is True

    @pytest.mark.asyncio
    async def test_validate_and_summarize(self, flow, seeded):
        validation = await flow.validate()
        summary = await flow.summarize(2025, 6)

        assert validation.can_generate
        assert summary.total_recurring_expenses == 1

    @pytest.mark.asyncio
    async def test_list_periods(self, flow, seeded):
        listing = await flow.list_periods(EntityKind.EXPENSES, "p1")
        assert listing.keys == ["2025-06"]

    @pytest.mark.asyncio
    async def test_recurring_flags(self, flow, seeded):
        toggled = await flow.set_recurring("p1", 2025, 6, "rent", False)
        everything = await flow.list_recurring(2025, 6)
        one = await flow.list_recurring(2025, 6, property_id="p1")

        assert toggled.success
        assert everything.total_count == 0
        assert one.count == 0


class TestCreateAppComponents:
    """Tests for the component factory."""

    def test_without_storage_uses_memory(self):
        get_settings.cache_clear()
        flow, client = create_app_components(use_storage=False)

        assert isinstance(flow.store, InMemoryDocumentStore)
        assert client is None

    def test_unconfigured_firestore_leaves_no_store(self, monkeypatch):
        monkeypatch.delenv("FIRESTORE_PROJECT_ID", raising=False)
        get_settings.cache_clear()

        flow, client = create_app_components(use_storage=True)

        assert flow.store is None
        assert client is None
        assert flow.storage_configured is False
        assert flow.storage_error.startswith("Storage not configured")


class TestWithoutStorage:
    """Without a store every operation fails instead of reporting an empty ledger."""

    @pytest.fixture
    def flow(self, clock, audit_logger):
        return RecurringFlow(None, audit_logger, clock, storage_error="Storage not configured: no project")

    @pytest.mark.asyncio
    async def test_generate_fails(self, flow, audit_storage, audit_types):
        result = await flow.generate()

        assert result.success is False
        assert result.error == "Storage not configured: no project"
        assert result.summary.target_period == "2025-07"
        assert audit_types(audit_storage) == ["storage_error"]

    @pytest.mark.asyncio
    async def test_summarize_fails(self, flow):
        summary = await flow.summarize(2025, 6)

        assert summary.success is False
        assert summary.properties == 0
        assert "Storage not configured" in summary.error

    @pytest.mark.asyncio
    async def test_validate_blocks_generation(self, flow):
        result = await flow.validate()

        assert result.can_generate is False
        assert [i.code for i in result.issues] == ["storage_unavailable"]

    @pytest.mark.asyncio
    async def test_list_periods_is_not_ok(self, flow):
        listing = await flow.list_periods(EntityKind.EXPENSES, "p1")

        assert listing.ok is False
        assert listing.periods == []

    @pytest.mark.asyncio
    async def test_list_periods_still_checks_addressing(self, flow):
        with pytest.raises(MissingAddressParameter):
            await flow.list_periods(EntityKind.INCOMES, "p1")

    @pytest.mark.asyncio
    async def test_flag_operations_fail(self, flow):
        toggled = await flow.set_recurring("p1", 2025, 6, "rent", True)
        everything = await flow.list_recurring(2025, 6)
        one = await flow.list_recurring(2025, 6, property_id="p1")

        assert toggled.success is False
        assert everything.success is False
        assert one.success is False
        assert one.error == "Storage not configured: no project"
