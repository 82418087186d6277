"""IP address management: pools, overlapping range reservations and reconciliation of orphaned allocations."""

__version__ = "0.1.0"