"""Live pods reduced to the secondary-network IPs they carry."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from whereabouts.models import (
    CONDITION_TRUE,
    DISRUPTION_TARGET,
    NETWORK_STATUS_ANNOTATION,
    NetworkStatus,
    Pod,
    PodCondition,
)
from whereabouts.storage import IPPool

logger = logging.getLogger(__name__)


@dataclass
class PodWrapper:
    """The secondary IPs and the phase of a live pod."""

    ips: set[str] = field(default_factory=set)
    phase: str = ""


def compose_pod_ref(pod: Pod) -> str:
    """Return "namespace/name" for a pod."""
    return f"{pod.namespace}/{pod.name}"


def split_pod_ref(pod_ref: str) -> tuple[str, str]:
    """Split "namespace/name" into its two parts."""
    parts = pod_ref.split("/")
    if len(parts) != 2:
        raise ValueError(f"Failed to split podRef {pod_ref}")
    return parts[0], parts[1]


def network_status_from_pod(pod: Pod) -> str:
    """Return the network-status annotation, or "[]" when it is missing or empty."""
    return pod.annotations.get(NETWORK_STATUS_ANNOTATION) or "[]"


def get_flat_ip_set(pod: Pod) -> set[str]:
    """Collect the IPs of the pod's non-default networks; raise ValueError on a bad annotation."""
    annotation = network_status_from_pod(pod)
    try:
        decoded = json.loads(annotation)
        if decoded is None:
            statuses = []
        elif isinstance(decoded, list):
            statuses = [NetworkStatus.from_dict(item) for item in decoded]
        else:
            raise ValueError("network status annotation must be a JSON array")
    except ValueError as exc:
        raise ValueError(
            f"could not parse network annotation {annotation} for pod: "
            f"{compose_pod_ref(pod)}; error: {exc}"
        ) from exc

    ips: set[str] = set()
    for network in statuses:
        if network.default:
            continue
        for ip in network.ips:
            ips.add(ip)
            logger.debug("Added IP %s for pod %s", ip, compose_pod_ref(pod))
    return ips


def wrap_pod(pod: Pod) -> PodWrapper:
    """Wrap a pod; an unreadable annotation gives no IPs."""
    try:
        ips = get_flat_ip_set(pod)
    except ValueError as exc:
        logger.error("%s", exc)
        ips = set()
    return PodWrapper(ips=ips, phase=pod.phase)


def get_pod_refs_served_by_whereabouts(ip_pools: Iterable[IPPool]) -> set[str]:
    """Return the pod references holding any allocation in the pools."""
    return {reservation.pod_ref for pool in ip_pools for reservation in pool.allocations()}


def is_pod_marked_for_deletion(conditions: Iterable[PodCondition]) -> bool:
    """Tell whether the taint manager has marked the pod for deletion."""
    return any(
        condition.type == DISRUPTION_TARGET
        and condition.status == CONDITION_TRUE
        and condition.reason == "DeletionByTaintManager"
        for condition in conditions
    )


def index_pods(pods: Iterable[Pod], whereabouts_pod_refs: Mapping[str, object] | set[str]) -> dict[str, PodWrapper]:
    """Index the pods served by the plugin by reference, leaving out those being deleted."""
    index: dict[str, PodWrapper] = {}
    for pod in pods:
        pod_ref = compose_pod_ref(pod)
        if pod_ref not in whereabouts_pod_refs:
            continue
        if is_pod_marked_for_deletion(pod.conditions):
            logger.debug("Pod %s is marked for deletion; skipping", pod_ref)
            continue
        index[pod_ref] = wrap_pod(pod)
    return index


def is_ip_on_pod(live_pod: PodWrapper, pod_ref: str, ip: str) -> bool:
    """Tell whether the live pod carries the IP."""
    logger.debug(
        "pod reference %s matches allocation; Allocation IP: %s; PodIPs: %s",
        pod_ref,
        ip,
        sorted(live_pod.ips),
    )
    return ip in live_pod.ips