"""
Period Enumerator

Answers "which months have data?" for a property (expenses) or a
unit (incomes) by listing the period containers in the store.

DESIGN DECISION: An expenses period only counts if it holds at least
one item. An empty period container can be left behind by a failed
earlier run, and it must not be reported as a usable month.
An income period is a single document, so its existence is enough.

DESIGN DECISION: Listing failures do not raise. They produce an
empty listing flagged `ok=False`, so callers can tell "there are no
periods" apart from "we could not find out".
"""

from typing import Optional

import structlog
from pydantic import BaseModel, Field

from rental_ledger.periods.codec import InvalidPeriod, Period, decode_period
from rental_ledger.services.storage.interface import DocumentStoreInterface
from rental_ledger.services.storage.paths import EntityKind, UnsupportedKind, resolve


logger = structlog.get_logger(__name__)


class PeriodListing(BaseModel):
    """Periods found for one property/unit, oldest first."""
    ok: bool = True
    periods: list[Period] = Field(default_factory=list)
    error: Optional[str] = None

    @property
    def keys(self) -> list[str]:
        return [p.key for p in self.periods]


class PeriodEnumerator:
    """Lists the periods that exist for a property or unit."""

    def __init__(self, store: DocumentStoreInterface):
        self._store = store

    async def list_periods(
        self,
        kind,
        property_id: Optional[str],
        unit_id: Optional[str] = None,
    ) -> PeriodListing:
        """
        List existing periods, sorted ascending by (year, month).

        Args:
            kind: EntityKind.EXPENSES or EntityKind.INCOMES
            property_id: Owning property
            unit_id: Unit (incomes only)

        Returns:
            PeriodListing. On any store failure: ok=False, no periods.

        Raises:
            UnsupportedKind: Kind has no periods
            MissingAddressParameter: Required id missing
        """
        root = resolve(kind, property_id=property_id, unit_id=unit_id)
        if root.kind not in (EntityKind.EXPENSES, EntityKind.INCOMES):
            raise UnsupportedKind(f"{root.kind.value} are not partitioned by period")

        try:
            child_ids = await self._store.list_document_ids(root)

            found = set()
            for child_id in child_ids:
                try:
                    period = decode_period(child_id)
                except InvalidPeriod:
                    logger.warning("period_key_ignored", path=root.path, key=child_id)
                    continue
                # Only canonical keys address real containers
                if period.key != child_id:
                    logger.warning("period_key_ignored", path=root.path, key=child_id)
                    continue

                if root.kind is EntityKind.EXPENSES:
                    items = resolve(
                        EntityKind.EXPENSES,
                        property_id=property_id,
                        year=period.year,
                        month=period.month,
                    )
                    if not await self._store.has_documents(items):
                        logger.debug("empty_period_skipped", path=items.path)
                        continue

                found.add(period)

            return PeriodListing(periods=sorted(found))

        except Exception as e:
            logger.error("period_enumeration_failed", path=root.path, error=str(e))
            return PeriodListing(ok=False, error=str(e))
