"""
Hierarchical Path Resolver

Layout of the document store:

    properties/{propertyId}
    properties/{propertyId}/expenses/{YYYY-MM}/items/{itemId}
    properties/{propertyId}/units/{unitId}/incomes/{YYYY-MM}
    units/{unitId}

Expenses are item LISTS (a sub-collection per period). Incomes are a
single document per unit and period.

The resolver only builds addresses. It never touches the store, so
resolution errors are always programming/configuration defects and
are raised immediately.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict

from rental_ledger.periods.codec import InvalidPeriod, encode_period


PROPERTIES_COLLECTION = "properties"
UNITS_COLLECTION = "units"
EXPENSES_COLLECTION = "expenses"
INCOMES_COLLECTION = "incomes"
ITEMS_COLLECTION = "items"


class EntityKind(str, Enum):
    """Entity kinds the resolver knows how to address."""
    PROPERTIES = "properties"
    UNITS = "units"
    EXPENSES = "expenses"
    INCOMES = "incomes"


class PathResolutionError(ValueError):
    """Base exception for path resolution."""
    pass


class MissingAddressParameter(PathResolutionError):
    """A required id was not supplied for the requested kind."""
    pass


class UnsupportedKind(PathResolutionError):
    """The entity kind is not one the resolver knows."""
    pass


class Location(BaseModel):
    """
    Address of a collection or a document in the store.

    `segments` alternates collection and document ids, starting with
    a collection, exactly like a Firestore path. An odd number of
    segments addresses a collection, an even number a document.
    """
    model_config = ConfigDict(frozen=True)

    kind: EntityKind
    segments: tuple[str, ...]

    @property
    def is_collection(self) -> bool:
        return len(self.segments) % 2 == 1

    @property
    def is_document(self) -> bool:
        return not self.is_collection

    @property
    def path(self) -> str:
        return "/".join(self.segments)

    @property
    def name(self) -> str:
        """Last segment (collection name or document id)."""
        return self.segments[-1]

    def child(self, *segments: str) -> "Location":
        """Address something below this location."""
        return Location(kind=self.kind, segments=self.segments + tuple(segments))

    def __str__(self) -> str:
        return self.path


def _coerce_kind(kind) -> EntityKind:
    if isinstance(kind, EntityKind):
        return kind
    try:
        return EntityKind(kind)
    except ValueError:
        raise UnsupportedKind(f"Unsupported entity kind: {kind!r}")


def _period_key(year: Optional[int], month: Optional[int]) -> Optional[str]:
    if year is None and month is None:
        return None
    if year is None or month is None:
        raise InvalidPeriod(
            f"Both year and month are required to address a period (got year={year}, month={month})"
        )
    return encode_period(year, month)


def resolve(
    kind,
    property_id: Optional[str] = None,
    unit_id: Optional[str] = None,
    year: Optional[int] = None,
    month: Optional[int] = None,
) -> Location:
    """
    Resolve an entity kind and its addressing parameters to a Location.

    Args:
        kind: EntityKind or its string value
        property_id: Required for expenses and incomes
        unit_id: Required for incomes
        year, month: Optional period; both or neither

    Returns:
        - expenses with period: the period's item collection
        - expenses without period: the property's expenses container
        - incomes with period: the unit's income document for that period
        - incomes without period: the unit's incomes container
        - properties / units: the top-level collection

    Raises:
        UnsupportedKind: Unknown kind
        MissingAddressParameter: Required id missing
        InvalidPeriod: Half-specified or out-of-range period
    """
    kind = _coerce_kind(kind)

    if kind is EntityKind.PROPERTIES:
        return Location(kind=kind, segments=(PROPERTIES_COLLECTION,))

    if kind is EntityKind.UNITS:
        return Location(kind=kind, segments=(UNITS_COLLECTION,))

    if not property_id:
        raise MissingAddressParameter(f"property_id is required to address {kind.value}")

    if kind is EntityKind.EXPENSES:
        root = Location(
            kind=kind,
            segments=(PROPERTIES_COLLECTION, property_id, EXPENSES_COLLECTION),
        )
        key = _period_key(year, month)
        if key is None:
            return root
        return root.child(key, ITEMS_COLLECTION)

    # EntityKind.INCOMES
    if not unit_id:
        raise MissingAddressParameter("unit_id is required to address incomes")

    root = Location(
        kind=kind,
        segments=(
            PROPERTIES_COLLECTION,
            property_id,
            UNITS_COLLECTION,
            unit_id,
            INCOMES_COLLECTION,
        ),
    )
    key = _period_key(year, month)
    if key is None:
        return root
    return root.child(key)
