"""Storage interfaces for IP pools and cluster-wide reservations."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

REQUEST_TIMEOUT = 10.0
"""Seconds before a storage request times out."""

DATASTORE_RETRIES = 100
"""Attempts made when updating a pool."""

POD_REFRESH_RETRIES = 3


class TemporaryError(Exception):
    """An error after which the operation may be retried."""

    @property
    def temporary(self) -> bool:
        return True


def is_temporary(error: BaseException) -> bool:
    """Tell whether an error declares itself temporary."""
    temporary = getattr(error, "temporary", False)
    if callable(temporary):
        temporary = temporary()
    return bool(temporary)


class IPPool(ABC):
    """A manageable pool of allocated IPs."""

    @abstractmethod
    def allocations(self) -> list[Any]:
        """Return the reservations held by the pool."""

    @abstractmethod
    def update(self, reservations: list[Any]) -> None:
        """Replace the pool's reservations."""


class OverlappingRangeStore(ABC):
    """Storage for cluster-wide reservations across overlapping ranges."""

    @abstractmethod
    def get_overlapping_range_ip_reservation(self, ip: Any, pod_ref: str, network_name: str) -> Any:
        """Return the reservation for an IP, or None when it is free."""

    @abstractmethod
    def update_overlapping_range_allocation(
        self, mode: int, ip: Any, pod_ref: str, if_name: str, network_name: str
    ) -> None:
        """Allocate or deallocate a cluster-wide reservation."""


class Store(ABC):
    """The basic IP allocation operations of a storage backend."""

    @abstractmethod
    def get_ip_pool(self, pool_identifier: Any) -> IPPool:
        """Return the pool for a range."""

    @abstractmethod
    def get_overlapping_range_store(self) -> OverlappingRangeStore:
        """Return the store of cluster-wide reservations."""

    @abstractmethod
    def status(self) -> None:
        """Raise when the backend cannot be reached."""

    @abstractmethod
    def close(self) -> None:
        """Release the backend."""