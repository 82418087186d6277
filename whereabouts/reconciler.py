"""Removal of IP reservations whose pods are gone."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field

from whereabouts.client import Client
from whereabouts.models import POD_PENDING, OverlappingRangeIPReservation
from whereabouts.storage import POD_REFRESH_RETRIES, IPPool
from whereabouts.types import IPAddress, IPReservation
from whereabouts.wrapped_pod import (
    PodWrapper,
    get_pod_refs_served_by_whereabouts,
    index_pods,
    is_ip_on_pod,
    split_pod_ref,
    wrap_pod,
)

logger = logging.getLogger(__name__)

POD_REFRESH_INTERVAL = 0.25
"""Seconds to wait between re-reads of a pending pod."""


def _ip_text(ip: IPAddress | None) -> str:
    return "<nil>" if ip is None else str(ip)


@dataclass
class OrphanedIPReservations:
    """The reservations of one pool whose pods no longer hold them."""

    pool: IPPool
    allocations: list[IPReservation] = field(default_factory=list)


@dataclass
class ReconcileLooper:
    """Finds and removes stale pool and cluster-wide reservations."""

    client: Client | None = None
    live_whereabouts_pods: dict[str, PodWrapper] = field(default_factory=dict)
    orphaned_ips: list[OrphanedIPReservations] = field(default_factory=list)
    orphaned_cluster_wide_ips: list[OverlappingRangeIPReservation] = field(default_factory=list)

    @classmethod
    def from_client(cls, client: Client) -> ReconcileLooper:
        """Read pools, pods and cluster-wide reservations, and note the orphaned ones."""
        try:
            ip_pools = client.list_ip_pools()
        except Exception as exc:
            logger.error("failed to retrieve all IP pools: %s", exc)
            raise
        pods = client.list_pods()
        pod_refs = get_pod_refs_served_by_whereabouts(ip_pools)
        looper = cls(client=client, live_whereabouts_pods=index_pods(pods, pod_refs))
        looper._find_orphaned_ips_per_pool(ip_pools)
        looper._find_cluster_wide_ip_reservations()
        return looper

    def _find_orphaned_ips_per_pool(self, ip_pools: list[IPPool]) -> None:
        for pool in ip_pools:
            orphaned = OrphanedIPReservations(pool=pool)
            for reservation in pool.allocations():
                logger.debug("the IP reservation: %s", reservation)
                if not reservation.pod_ref:
                    logger.error("pod ref missing for Allocations: %s", reservation)
                    continue
                if not self._is_ip_in_use(reservation.pod_ref, _ip_text(reservation.ip)):
                    logger.debug("pod ref %s is not listed in the live pods list", reservation.pod_ref)
                    orphaned.allocations.append(reservation)
            if orphaned.allocations:
                self.orphaned_ips.append(orphaned)

    def _find_cluster_wide_ip_reservations(self) -> None:
        if self.client is None:
            return
        try:
            reservations = self.client.list_overlapping_ips()
        except Exception as exc:
            logger.error("failed to list all OverLappingIPs: %s", exc)
            raise
        for reservation in reservations:
            # reservation names carry the IP with ":" replaced to be valid names
            denormalized_ip = reservation.name.replace("-", ":")
            if not self._is_ip_in_use(reservation.pod_ref, denormalized_ip):
                logger.debug("pod ref %s is not listed in the live pods list", reservation.pod_ref)
                self.orphaned_cluster_wide_ips.append(reservation)

    def _is_ip_in_use(self, pod_ref: str, ip: str) -> bool:
        """Tell whether a live pod with this reference carries the IP."""
        live_pod = self.live_whereabouts_pods.get(pod_ref)
        if live_pod is None:
            return False
        found = is_ip_on_pod(live_pod, pod_ref, ip)
        if found or live_pod.phase != POD_PENDING:
            return found

        # A pending pod may not carry its network annotation yet: re-read it a few times.
        logger.debug("Re-fetching Pending Pod: %s IP-to-match: %s", pod_ref, ip)
        pod_to_match = live_pod
        for _ in range(POD_REFRESH_RETRIES):
            refreshed = self._refresh_pod(pod_ref)
            if refreshed is None:
                logger.debug("Cleaning up...")
                return False
            pod_to_match = refreshed
            if pod_to_match.phase != POD_PENDING:
                logger.debug("Pending Pod is now in phase: %s", pod_to_match.phase)
                break
            if is_ip_on_pod(pod_to_match, pod_ref, ip):
                logger.debug("Pod now has IP annotation while in Pending")
                return True
            time.sleep(POD_REFRESH_INTERVAL)
        return is_ip_on_pod(pod_to_match, pod_ref, ip)

    def _refresh_pod(self, pod_ref: str) -> PodWrapper | None:
        if self.client is None:
            return None
        try:
            namespace, name = split_pod_ref(pod_ref)
        except ValueError as exc:
            logger.error("Invalid podRef format: %s (%s)", pod_ref, exc)
            return None
        if not namespace or not name:
            logger.error("Invalid podRef format: %s", pod_ref)
            return None
        try:
            pod = self.client.get_pod(namespace, name)
        except Exception as exc:
            logger.error("Failed to refresh Pod %s: %s", pod_ref, exc)
            return None
        wrapped = wrap_pod(pod)
        logger.debug("Got refreshed pod: %r", wrapped)
        return wrapped

    def reconcile_ip_pools(self) -> list[IPAddress | None]:
        """Remove the orphaned reservations from their pools and return their IPs."""
        cleaned_up: list[IPAddress | None] = []
        for orphaned in self.orphaned_ips:
            current = orphaned.pool.allocations()
            cleaned_in_pool: list[IPAddress | None] = []
            for allocation in orphaned.allocations:
                match = next(
                    (
                        reservation
                        for reservation in current
                        if reservation.pod_ref == allocation.pod_ref and reservation.ip == allocation.ip
                    ),
                    None,
                )
                if match is None:
                    logger.debug(
                        "Failed to find allocation for pod ref: %s and IP: %s",
                        allocation.pod_ref,
                        _ip_text(allocation.ip),
                    )
                    continue
                current.remove(match)
                cleaned_in_pool.append(allocation.ip)

            if cleaned_in_pool:
                logger.debug("Going to update the reserve list to: %r", current)
                try:
                    orphaned.pool.update(current)
                except Exception as exc:
                    logger.error("failed to update the reservation list: %s", exc)
                    raise
                cleaned_up.extend(cleaned_in_pool)
        return cleaned_up

    def reconcile_overlapping_ip_addresses(self) -> None:
        """Delete the orphaned cluster-wide reservations; raise if any could not be deleted."""
        failed: list[str] = []
        for reservation in self.orphaned_cluster_wide_ips:
            try:
                if self.client is None:
                    raise RuntimeError("no cluster client")
                self.client.delete_overlapping_ip(reservation)
            except Exception as exc:
                logger.error("failed to remove cluster wide IP: %s (%s)", reservation.name, exc)
                failed.append(reservation.name)
                continue
            logger.info("removed stale overlappingIP allocation [%s]", reservation.name)
        if failed:
            message = f"could not reconcile cluster wide IPs: {failed}"
            logger.error("%s", message)
            raise RuntimeError(message)


def reconcile_ips(client: Client) -> list[IPAddress | None]:
    """Run one reconciliation pass and return the pool IPs that were freed."""
    logger.info("starting reconciler run")
    try:
        looper = ReconcileLooper.from_client(client)
    except Exception as exc:
        logger.error("failed to create the reconcile looper: %s", exc)
        raise
    try:
        cleaned_up = looper.reconcile_ip_pools()
    except Exception as exc:
        logger.error("failed to clean up IP for allocations: %s", exc)
        raise
    if cleaned_up:
        logger.debug("successfully cleanup IPs: %s", [_ip_text(ip) for ip in cleaned_up])
    else:
        logger.debug("no IP addresses to cleanup")
    looper.reconcile_overlapping_ip_addresses()
    return cleaned_up