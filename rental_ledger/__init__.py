"""
Rental Ledger - Source Package

Keeps monthly expense records for rental properties in a hierarchical
document store and rolls recurring expenses forward from one month
to the next.

DESIGN PRINCIPLES:
1. A period is always addressed by its canonical YYYY-MM key
2. Generation never creates the same obligation twice in one period
3. One bad record never blocks the other properties
4. Every run is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Rental Ledger Team"
