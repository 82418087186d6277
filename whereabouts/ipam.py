"""The cluster-backed IPAM store: pools, cluster-wide reservations and node slices."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from whereabouts.client import InMemoryCluster
from whereabouts.models import (
    NAMESPACE_SYSTEM,
    AlreadyExistsError,
    IPPoolResource,
    NotFoundError,
    ObjectMeta,
    OverlappingRangeIPReservation,
)
from whereabouts.pools import (
    UNNAMED_NETWORK,
    KubernetesIPPool,
    PoolIdentifier,
    ip_pool_name,
    normalize_ip,
)
from whereabouts.storage import OverlappingRangeStore, Store, TemporaryError
from whereabouts.types import IPAddress, IPAMConfig, Operation

logger = logging.getLogger(__name__)

HOSTNAME_FILE = Path("/etc/hostname")
"""File read for the node name when NODENAME is not set."""

_HOSTNAME_READ_LIMIT = 1024


def get_node_name() -> str:
    """Return the node name from NODENAME, or else from the hostname file."""
    env_name = os.environ.get("NODENAME", "")
    if env_name:
        return env_name.strip()
    try:
        with open(HOSTNAME_FILE, "rb") as handle:
            data = handle.read(_HOSTNAME_READ_LIMIT)
    except OSError as exc:
        logger.error("Error opening file %s: %s", HOSTNAME_FILE, exc)
        raise
    hostname = data.decode("utf-8", errors="replace").strip()
    logger.debug("discovered current hostname as: %s", hostname)
    return hostname


class KubernetesOverlappingRangeStore(OverlappingRangeStore):
    """Cluster-wide reservations kept as resources named after the normalized IP."""

    def __init__(self, cluster: InMemoryCluster, namespace: str) -> None:
        self.cluster = cluster
        self.namespace = namespace

    def get_overlapping_range_ip_reservation(
        self, ip: IPAddress | None, pod_ref: str, network_name: str
    ) -> OverlappingRangeIPReservation | None:
        """Return the reservation holding the IP, or None when the IP is free."""
        normalized = normalize_ip(ip, network_name)
        logger.debug(
            "Get overlappingRangewide allocation; normalized IP: %r, IP: %r, networkName: %r",
            normalized,
            str(ip),
            network_name,
        )
        try:
            reservation = self.cluster.get_overlapping_reservation(self.namespace, normalized)
        except NotFoundError:
            return None
        logger.debug(
            "Normalized IP is reserved; normalized IP: %r, IP: %r, networkName: %r",
            normalized,
            str(ip),
            network_name,
        )
        return reservation

    def update_overlapping_range_allocation(
        self,
        mode: int,
        ip: IPAddress | None,
        pod_ref: str,
        if_name: str,
        network_name: str,
    ) -> None:
        """Create the reservation when allocating, delete it when deallocating."""
        normalized = normalize_ip(ip, network_name)
        reservation = OverlappingRangeIPReservation(
            metadata=ObjectMeta(name=normalized, namespace=self.namespace)
        )
        if mode == Operation.ALLOCATE:
            verb = "allocate"
            reservation.pod_ref = pod_ref
            reservation.if_name = if_name
            self.cluster.create_overlapping_reservation(reservation)
        elif mode == Operation.DEALLOCATE:
            verb = "deallocate"
            self.cluster.delete_overlapping_reservation(self.namespace, normalized)
        else:
            verb = ""
        logger.debug("K8s UpdateOverlappingRangeAllocation success on %s: %r", verb, reservation)


class KubernetesIPAM(Store):
    """IP blocks managed as pool resources in one namespace of the cluster."""

    def __init__(
        self,
        cluster: InMemoryCluster,
        config: IPAMConfig,
        namespace: str = "",
        container_id: str = "",
        if_name: str = "",
    ) -> None:
        self.cluster = cluster
        self.config = config
        self.namespace = namespace or NAMESPACE_SYSTEM
        self.container_id = container_id
        self.if_name = if_name

    def _get_pool(self, name: str, ip_range: str) -> IPPoolResource:
        try:
            return self.cluster.get_ip_pool(self.namespace, name)
        except NotFoundError:
            pass
        new_pool = IPPoolResource(
            metadata=ObjectMeta(name=name, namespace=self.namespace),
            range=ip_range,
            allocations={},
        )
        try:
            self.cluster.create_ip_pool(new_pool)
        except AlreadyExistsError as exc:
            # the pool was just created by someone else -- allow retry
            raise TemporaryError(str(exc)) from exc
        # a fresh pool triggers a retry so that its metadata is read back
        raise TemporaryError("k8s pool initialized")

    def get_ip_pool(self, pool_identifier: PoolIdentifier) -> KubernetesIPPool:
        """Return the pool for the identifier, creating it (and raising TemporaryError) if absent."""
        name = ip_pool_name(pool_identifier)
        resource = self._get_pool(name, pool_identifier.ip_range)
        first_ip, _ = resource.parse_cidr()
        return KubernetesIPPool(self.cluster, first_ip, resource)

    def get_overlapping_range_store(self) -> KubernetesOverlappingRangeStore:
        return KubernetesOverlappingRangeStore(self.cluster, self.namespace)

    def node_slice_name(self) -> str:
        """Name of the node slice pool: the network name, or the config name if unnamed."""
        if self.config.network_name == UNNAMED_NETWORK:
            return self.config.name
        return self.config.network_name

    def get_node_slice_pool_range(self, node_name: str) -> str:
        """Return the slice range allocated to a node."""
        logger.debug("ipam namespace is %s", self.namespace)
        slice_name = self.node_slice_name()
        try:
            node_slice = self.cluster.get_node_slice_pool(self.namespace, slice_name)
        except NotFoundError as exc:
            logger.error("error getting node slice %s/%s %s", self.namespace, slice_name, exc)
            raise
        for allocation in node_slice.allocations:
            if allocation.node_name == node_name:
                logger.debug(
                    "found matching node slice allocation for hostname %s: %r", node_name, allocation
                )
                return allocation.slice_range
        logger.error("error finding node within node slice allocations")
        raise LookupError("no allocated node slice for node")

    def status(self) -> None:
        """Check connectivity by listing the pools of the namespace."""
        self.cluster.list_ip_pools(self.namespace)

    def close(self) -> None:
        """Nothing to release."""