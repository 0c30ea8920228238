"""finloop: SimpleFIN ingestion, reconciliation and categorization engine.

This package provides the finance sync pipeline used by the Loop app:
- SimpleFIN Bridge access URL parsing and authenticated account reads
- Normalization of upstream accounts/transactions into integer minor units
- Reconciliation against stored records that preserves user-owned fields
- Priority-ordered rule categorization and e-transfer payment matching

The engine never persists anything itself. Every sync returns an explicit
change-set that the caller applies to its own store.
"""

__version__ = "0.1.0"
