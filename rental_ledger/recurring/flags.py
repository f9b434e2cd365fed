"""
Recurring Flag Service

Marks and unmarks expense items as recurring, and lists the items that
the next generation run will propagate.
"""

from datetime import datetime
from typing import Callable, Optional

import structlog

from rental_ledger.audit import AuditLogger
from rental_ledger.models.expense import (
    PropertyRecurringExpenses,
    RecurringListing,
    RecurringToggleResult,
)
from rental_ledger.periods.codec import make_period, utc_now
from rental_ledger.services.storage import (
    DocumentStoreInterface,
    EntityKind,
    NotFoundError,
    StorageError,
    resolve,
)


logger = structlog.get_logger(__name__)


class RecurringFlagService:
    """Reads and writes the isRecurring flag of expense items."""

    def __init__(
        self,
        store: DocumentStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._store = store
        self._audit_logger = audit_logger
        self._clock = clock

    async def set_recurring(
        self,
        property_id: str,
        year: int,
        month: int,
        expense_id: str,
        is_recurring: bool,
    ) -> RecurringToggleResult:
        """
        Set or clear the recurring flag of one expense item.

        Only `isRecurring` and `updatedAt` are written.

        Returns:
            RecurringToggleResult. success=False if the item doesn't
            exist or the store rejects the update.

        Raises:
            InvalidPeriod: If year/month is invalid
        """
        period = make_period(year, month)
        location = resolve(EntityKind.EXPENSES, property_id, year=period.year, month=period.month)
        result = RecurringToggleResult(
            success=False,
            property_id=property_id,
            expense_id=expense_id,
            period=period.key,
            is_recurring=is_recurring,
        )

        try:
            await self._store.update_document(
                location,
                expense_id,
                {"isRecurring": is_recurring, "updatedAt": self._clock().isoformat()},
            )
        except NotFoundError:
            result.error = f"Expense {expense_id} not found in {location.path}"
            return result
        except StorageError as e:
            logger.error("recurring_flag_update_failed", path=location.path, expense_id=expense_id, error=str(e))
            result.error = str(e)
            return result

        result.success = True
        result.message = (
            "Expense marked as recurring" if is_recurring else "Expense unmarked as recurring"
        )
        logger.info(
            "recurring_flag_updated",
            property_id=property_id,
            period=period.key,
            expense_id=expense_id,
            is_recurring=is_recurring,
        )
        if self._audit_logger:
            await self._audit_logger.log_recurring_flag_updated(
                property_id=property_id,
                period=period.key,
                expense_id=expense_id,
                is_recurring=is_recurring,
            )
        return result

    async def list_recurring(
        self,
        property_id: str,
        year: int,
        month: int,
        property_name: Optional[str] = None,
    ) -> PropertyRecurringExpenses:
        """List the recurring items of one property in one period."""
        period = make_period(year, month)
        listing = PropertyRecurringExpenses(
            property_id=property_id,
            property_name=property_name,
            year=period.year,
            month=period.month,
        )
        location = resolve(EntityKind.EXPENSES, property_id, year=period.year, month=period.month)

        try:
            documents = await self._store.get_documents(location)
        except Exception as e:
            logger.warning("recurring_listing_failed", path=location.path, error=str(e))
            listing.success = False
            listing.error = str(e)
            return listing

        listing.expenses = [doc for doc in documents if doc.get("isRecurring") is True]
        listing.count = len(listing.expenses)
        return listing

    async def list_all_recurring(self, year: int, month: int) -> RecurringListing:
        """
        List recurring items of every property in one period.

        Only properties with at least one recurring item are listed,
        plus any property whose items could not be read (with its error).
        """
        period = make_period(year, month)
        listing = RecurringListing(year=period.year, month=period.month)

        try:
            properties = await self._store.get_documents(resolve(EntityKind.PROPERTIES))
        except Exception as e:
            logger.error("recurring_listing_failed", error=str(e))
            listing.success = False
            listing.error = f"Could not list properties: {e}"
            return listing

        for prop in properties:
            entry = await self.list_recurring(
                prop["id"], period.year, period.month, property_name=prop.get("name")
            )
            if not entry.success or entry.count > 0:
                listing.properties_data.append(entry)
            if entry.count > 0:
                listing.properties_with_recurring += 1
                listing.total_count += entry.count

        return listing
