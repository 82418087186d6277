"""Pool naming, address offsets and the cluster-backed IP pool."""

from __future__ import annotations

import copy
import ipaddress
import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Protocol

from whereabouts.models import IPAllocation, IPPoolResource, InvalidError
from whereabouts.storage import IPPool, TemporaryError
from whereabouts.types import IPAddress, IPReservation

logger = logging.getLogger(__name__)

UNNAMED_NETWORK = ""

_OFFSET = re.compile(r"[+-]?[0-9]+")
_INT64_MAX = 2**63 - 1


@dataclass(frozen=True)
class PoolIdentifier:
    """What selects a pool: its range, network and, for node slices, the node."""

    ip_range: str
    network_name: str = UNNAMED_NETWORK
    node_name: str = ""


def normalize_range(ip_range: str) -> str:
    """Turn a range into a valid resource name."""
    if not ip_range:
        raise ValueError("empty IP range")
    if ip_range.endswith(":"):
        ip_range += "0"
    return ip_range.replace(":", "-").replace("/", "-")


def ip_pool_name(pool_identifier: PoolIdentifier) -> str:
    """Return the resource name of the pool for an identifier."""
    normalized = normalize_range(pool_identifier.ip_range)
    parts = []
    if pool_identifier.network_name != UNNAMED_NETWORK:
        parts.append(pool_identifier.network_name)
    if pool_identifier.node_name:
        parts.append(pool_identifier.node_name)
    parts.append(normalized)
    return "-".join(parts)


def normalize_ip(ip: IPAddress | None, network_name: str) -> str:
    """Name a cluster-wide reservation after its IP and, if set, its network."""
    ip_str = "<nil>" if ip is None else str(ip)
    if ip_str.endswith(":"):
        ip_str += "0"
        logger.debug("modified: %s", ip_str)
    normalized = ip_str.replace(":", "-")
    if network_name != UNNAMED_NETWORK:
        normalized = f"{network_name}-{normalized}"
    return normalized


def ip_add_offset(first_ip: IPAddress, offset: int) -> IPAddress:
    """Return the address ``offset`` places after ``first_ip``."""
    if offset < 0:
        raise ValueError(f"negative offset {offset}")
    try:
        return type(first_ip)(int(first_ip) + offset)
    except ValueError:
        raise ValueError(f"offset {offset} from {first_ip} is out of range") from None


def ip_get_offset(ip: IPAddress, first_ip: IPAddress) -> int:
    """Return how many places ``ip`` lies after ``first_ip``."""
    if ip.version != first_ip.version:
        raise ValueError("cannot compare ipv4 and ipv6")
    offset = int(ip) - int(first_ip)
    if offset < 0:
        raise ValueError(f"{ip} precedes {first_ip}")
    return offset


def to_ip_reservation_list(
    allocations: Mapping[str, IPAllocation], first_ip: IPAddress
) -> list[IPReservation]:
    """Turn stored allocations into reservations; unreadable offsets are skipped."""
    reservations = []
    for offset, allocation in allocations.items():
        if not _OFFSET.fullmatch(offset) or not 0 <= int(offset) <= _INT64_MAX:
            logger.error("Error decoding ip offset (backend: kubernetes): %r", offset)
            continue
        try:
            ip = ip_add_offset(first_ip, int(offset))
        except ValueError as exc:
            logger.error("Error decoding ip offset (backend: kubernetes): %s", exc)
            continue
        reservations.append(
            IPReservation(
                ip=ip,
                container_id=allocation.container_id,
                pod_ref=allocation.pod_ref,
                if_name=allocation.if_name,
            )
        )
    return reservations


def to_allocation_map(
    reservations: Iterable[IPReservation], first_ip: IPAddress
) -> dict[str, IPAllocation]:
    """Turn reservations into allocations keyed by their decimal offset."""
    allocations = {}
    for reservation in reservations:
        if reservation.ip is None:
            raise ValueError(f"reservation for {reservation.pod_ref!r} has no IP")
        index = ip_get_offset(reservation.ip, first_ip)
        allocations[str(index)] = IPAllocation(
            container_id=reservation.container_id,
            pod_ref=reservation.pod_ref,
            if_name=reservation.if_name,
        )
    return allocations


class _PoolWriter(Protocol):
    def update_ip_pool(self, pool: IPPoolResource, expected_resource_version: str) -> Any: ...


class KubernetesIPPool(IPPool):
    """A stored pool together with the first IP its offsets count from."""

    def __init__(self, cluster: _PoolWriter, first_ip: IPAddress, pool: IPPoolResource) -> None:
        self.cluster = cluster
        self.first_ip = first_ip
        self.pool = pool

    def allocations(self) -> list[IPReservation]:
        """Return the reservations as they were when the pool was read."""
        return to_ip_reservation_list(self.pool.allocations, self.first_ip)

    def update(self, reservations: Iterable[IPReservation]) -> None:
        """Store the given reservations, only if the pool is unchanged since it was read."""
        expected_version = self.pool.metadata.resource_version
        self.pool.allocations = to_allocation_map(reservations, self.first_ip)
        try:
            self.cluster.update_ip_pool(copy.deepcopy(self.pool), expected_version)
        except InvalidError as exc:
            raise TemporaryError(str(exc)) from exc

    def __repr__(self) -> str:
        return f"KubernetesIPPool(first_ip={self.first_ip!s}, pool={self.pool!r})"