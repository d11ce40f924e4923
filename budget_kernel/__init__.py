"""
Budget Kernel

Tracks budget requests from submission through fund release to vendors:
- Forward-only request lifecycle with at-most-once allocation
- Vendor wallet ledger with a conservation invariant across buckets
- Monotonically sequenced, hash-stamped ledger records
- Independent recomputation and classification of record hashes
"""

__version__ = "0.1.0"
