"""Access to the cluster's pools, pods and cluster-wide reservations."""

from __future__ import annotations

import copy
import logging
from collections.abc import Iterable
from typing import TypeVar

from whereabouts.models import (
    NAMESPACE_ALL,
    AlreadyExistsError,
    InvalidError,
    IPPoolResource,
    NodeSlicePool,
    NotFoundError,
    OverlappingRangeIPReservation,
    Pod,
)
from whereabouts.pools import KubernetesIPPool
from whereabouts.storage import DATASTORE_RETRIES

logger = logging.getLogger(__name__)

_R = TypeVar("_R", IPPoolResource, Pod, OverlappingRangeIPReservation, NodeSlicePool)


class InMemoryCluster:
    """A cluster API kept in memory, with optimistic concurrency on pool updates."""

    def __init__(
        self,
        *,
        ip_pools: Iterable[IPPoolResource] = (),
        pods: Iterable[Pod] = (),
        overlapping_reservations: Iterable[OverlappingRangeIPReservation] = (),
        node_slice_pools: Iterable[NodeSlicePool] = (),
    ) -> None:
        self._revision = 0
        self._ip_pools: dict[tuple[str, str], IPPoolResource] = {}
        self._pods: dict[tuple[str, str], Pod] = {}
        self._reservations: dict[tuple[str, str], OverlappingRangeIPReservation] = {}
        self._node_slice_pools: dict[tuple[str, str], NodeSlicePool] = {}
        for pool in ip_pools:
            self.create_ip_pool(pool)
        for pod in pods:
            self.create_pod(pod)
        for reservation in overlapping_reservations:
            self.create_overlapping_reservation(reservation)
        for node_slice_pool in node_slice_pools:
            self.create_node_slice_pool(node_slice_pool)

    def _next_version(self, current: str = "") -> str:
        self._revision += 1
        version = str(self._revision)
        while version == current:
            self._revision += 1
            version = str(self._revision)
        return version

    @staticmethod
    def _list(store: dict[tuple[str, str], _R], namespace: str) -> list[_R]:
        return [
            copy.deepcopy(store[key])
            for key in sorted(store)
            if namespace == NAMESPACE_ALL or key[0] == namespace
        ]

    @staticmethod
    def _get(store: dict[tuple[str, str], _R], kind: str, namespace: str, name: str) -> _R:
        try:
            return copy.deepcopy(store[(namespace, name)])
        except KeyError:
            raise NotFoundError(f'{kind} "{namespace}/{name}" not found') from None

    def _create(self, store: dict[tuple[str, str], _R], kind: str, resource: _R) -> _R:
        key = (resource.metadata.namespace, resource.metadata.name)
        if key in store:
            raise AlreadyExistsError(f'{kind} "{key[0]}/{key[1]}" already exists')
        stored = copy.deepcopy(resource)
        if not stored.metadata.resource_version:
            stored.metadata.resource_version = self._next_version()
        store[key] = stored
        return copy.deepcopy(stored)

    @staticmethod
    def _delete(store: dict[tuple[str, str], _R], kind: str, namespace: str, name: str) -> None:
        try:
            del store[(namespace, name)]
        except KeyError:
            raise NotFoundError(f'{kind} "{namespace}/{name}" not found') from None

    def list_ip_pools(self, namespace: str) -> list[IPPoolResource]:
        return self._list(self._ip_pools, namespace)

    def get_ip_pool(self, namespace: str, name: str) -> IPPoolResource:
        return self._get(self._ip_pools, "ippool", namespace, name)

    def create_ip_pool(self, pool: IPPoolResource) -> IPPoolResource:
        return self._create(self._ip_pools, "ippool", pool)

    def update_ip_pool(self, pool: IPPoolResource, expected_resource_version: str) -> IPPoolResource:
        """Replace a pool, failing with InvalidError if it changed since that version."""
        key = (pool.metadata.namespace, pool.metadata.name)
        current = self._ip_pools.get(key)
        if current is None:
            raise NotFoundError(f'ippool "{key[0]}/{key[1]}" not found')
        if current.metadata.resource_version != expected_resource_version:
            raise InvalidError(
                f'ippool "{key[0]}/{key[1]}": resource version '
                f"{current.metadata.resource_version!r} does not match {expected_resource_version!r}"
            )
        stored = copy.deepcopy(pool)
        stored.metadata.resource_version = self._next_version(current.metadata.resource_version)
        self._ip_pools[key] = stored
        return copy.deepcopy(stored)

    def list_pods(self, namespace: str) -> list[Pod]:
        return self._list(self._pods, namespace)

    def get_pod(self, namespace: str, name: str) -> Pod:
        return self._get(self._pods, "pod", namespace, name)

    def create_pod(self, pod: Pod) -> Pod:
        return self._create(self._pods, "pod", pod)

    def delete_pod(self, namespace: str, name: str) -> None:
        self._delete(self._pods, "pod", namespace, name)

    def list_overlapping_reservations(self, namespace: str) -> list[OverlappingRangeIPReservation]:
        return self._list(self._reservations, namespace)

    def get_overlapping_reservation(self, namespace: str, name: str) -> OverlappingRangeIPReservation:
        return self._get(self._reservations, "overlappingrangeipreservation", namespace, name)

    def create_overlapping_reservation(
        self, reservation: OverlappingRangeIPReservation
    ) -> OverlappingRangeIPReservation:
        return self._create(self._reservations, "overlappingrangeipreservation", reservation)

    def delete_overlapping_reservation(self, namespace: str, name: str) -> None:
        self._delete(self._reservations, "overlappingrangeipreservation", namespace, name)

    def get_node_slice_pool(self, namespace: str, name: str) -> NodeSlicePool:
        return self._get(self._node_slice_pools, "nodeslicepool", namespace, name)

    def create_node_slice_pool(self, node_slice_pool: NodeSlicePool) -> NodeSlicePool:
        return self._create(self._node_slice_pools, "nodeslicepool", node_slice_pool)


class Client:
    """Cluster-wide queries used by the reconciler."""

    def __init__(self, cluster: InMemoryCluster, retries: int = DATASTORE_RETRIES) -> None:
        self.cluster = cluster
        self.retries = retries

    def list_ip_pools(self) -> list[KubernetesIPPool]:
        """Return every pool in every namespace; a pool with a bad range raises ValueError."""
        logger.debug("listing IP pools")
        pools = []
        for resource in self.cluster.list_ip_pools(NAMESPACE_ALL):
            first_ip, _ = resource.parse_cidr()
            pools.append(KubernetesIPPool(self.cluster, first_ip, resource))
        return pools

    def list_pods(self) -> list[Pod]:
        logger.debug("listing Pods")
        return self.cluster.list_pods(NAMESPACE_ALL)

    def get_pod(self, namespace: str, name: str) -> Pod:
        return self.cluster.get_pod(namespace, name)

    def list_overlapping_ips(self) -> list[OverlappingRangeIPReservation]:
        return self.cluster.list_overlapping_reservations(NAMESPACE_ALL)

    def delete_overlapping_ip(self, reservation: OverlappingRangeIPReservation) -> None:
        self.cluster.delete_overlapping_reservation(reservation.namespace, reservation.name)