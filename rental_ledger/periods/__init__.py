"""
Periods Package

The period key codec and calendar helpers. The store-backed
enumerator lives in rental_ledger.periods.enumerator.
"""

from rental_ledger.periods.codec import (
    InvalidPeriod,
    Period,
    add_one_month,
    current_period,
    decode_period,
    encode_period,
    make_period,
    parse_date,
    resolve_generation_periods,
    utc_now,
)

__all__ = [
    "InvalidPeriod",
    "Period",
    "add_one_month",
    "current_period",
    "decode_period",
    "encode_period",
    "make_period",
    "parse_date",
    "resolve_generation_periods",
    "utc_now",
]
