"""Shared fixtures: an in-memory ledger and a fixed clock."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from rental_ledger.audit import AuditLogger
from rental_ledger.periods.codec import decode_period
from rental_ledger.services.storage import (
    AuditStorageInterface,
    EntityKind,
    InMemoryDocumentStore,
    resolve,
)


# Mid-June 2025: the default source period is 2025-06, target 2025-07
FIXED_NOW = datetime(2025, 6, 10, 9, 30, tzinfo=timezone.utc)


class Ledger:
    """Seeds and inspects an InMemoryDocumentStore by period key."""

    def __init__(self, store: InMemoryDocumentStore):
        self.store = store

    def expenses(self, property_id: str, period_key: str):
        period = decode_period(period_key)
        return resolve(EntityKind.EXPENSES, property_id, year=period.year, month=period.month)

    def add_property(self, property_id: str, name: str = None) -> None:
        self.store.seed(resolve(EntityKind.PROPERTIES), property_id, {"name": name or property_id})

    def add_expense(self, property_id: str, period_key: str, expense_id: str, **fields) -> None:
        self.store.seed(self.expenses(property_id, period_key), expense_id, fields)

    def items(self, property_id: str, period_key: str) -> list[dict]:
        return self.store.snapshot(self.expenses(property_id, period_key))


@pytest.fixture
def now():
    return FIXED_NOW


@pytest.fixture
def clock(now):
    return lambda: now


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def ledger(store):
    return Ledger(store)


@pytest.fixture
def audit_storage():
    storage = AsyncMock(spec=AuditStorageInterface)
    storage.append_event.return_value = True
    return storage


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)


def audited_types(audit_storage) -> list[str]:
    """Event types appended to a mocked audit store, in order."""
    return [c.args[0].event_type.value for c in audit_storage.append_event.await_args_list]


@pytest.fixture
def audit_types():
    return audited_types
