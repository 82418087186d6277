import ipaddress

import pytest

from whereabouts.models import IPAllocation, IPPoolResource, InvalidError, NotFoundError, ObjectMeta
from whereabouts.pools import (
    UNNAMED_NETWORK,
    KubernetesIPPool,
    PoolIdentifier,
    ip_add_offset,
    ip_get_offset,
    ip_pool_name,
    normalize_ip,
    normalize_range,
    to_allocation_map,
    to_ip_reservation_list,
)
from whereabouts.storage import TemporaryError, is_temporary
from whereabouts.types import IPReservation


@pytest.mark.parametrize(
    "identifier, expected",
    [
        (PoolIdentifier(network_name=UNNAMED_NETWORK, ip_range="10.0.0.0/8"), "10.0.0.0-8"),
        (PoolIdentifier(network_name="test", ip_range="10.0.0.0/8"), "test-10.0.0.0-8"),
        (
            PoolIdentifier(network_name=UNNAMED_NETWORK, node_name="testnode", ip_range="10.0.0.0/8"),
            "testnode-10.0.0.0-8",
        ),
        (
            PoolIdentifier(network_name="testnetwork", node_name="testnode", ip_range="10.0.0.0/8"),
            "testnetwork-testnode-10.0.0.0-8",
        ),
    ],
)
def test_ip_pool_name(identifier, expected):
    assert ip_pool_name(identifier) == expected


def test_normalize_range_ipv6():
    assert normalize_range("fd00::/64") == "fd00---64"
    assert normalize_range("fd00::") == "fd00--0"


def test_normalize_range_empty_raises():
    with pytest.raises(ValueError):
        normalize_range("")


def test_normalize_ip():
    assert normalize_ip(ipaddress.ip_address("10.10.10.1"), "") == "10.10.10.1"
    assert normalize_ip(ipaddress.ip_address("10.10.10.1"), "net1") == "net1-10.10.10.1"
    assert normalize_ip(ipaddress.ip_address("2001:db8::"), "") == "2001-db8--0"
    assert normalize_ip(ipaddress.ip_address("2001:db8::1"), "net1") == "net1-2001-db8--1"


def test_offset_round_trip():
    first = ipaddress.ip_address("10.10.10.0")
    for offset in (0, 1, 255, 65535):
        assert ip_get_offset(ip_add_offset(first, offset), first) == offset


def test_add_offset_ipv6():
    first = ipaddress.ip_address("2001:1b74:480:60b1::10")
    assert ip_add_offset(first, 1) == ipaddress.ip_address("2001:1b74:480:60b1::11")


def test_add_offset_overflow_raises():
    with pytest.raises(ValueError):
        ip_add_offset(ipaddress.ip_address("255.255.255.255"), 1)


def test_get_offset_mixed_families_raises():
    with pytest.raises(ValueError):
        ip_get_offset(ipaddress.ip_address("::1"), ipaddress.ip_address("10.0.0.0"))


def test_get_offset_before_first_raises():
    with pytest.raises(ValueError):
        ip_get_offset(ipaddress.ip_address("10.0.0.0"), ipaddress.ip_address("10.0.0.5"))


def test_to_ip_reservation_list_skips_invalid_offsets():
    first = ipaddress.ip_address("10.10.10.0")
    allocations = {
        "1": IPAllocation(container_id="c1", pod_ref="default/pod1", if_name="net1"),
        "abc": IPAllocation(pod_ref="default/bad"),
        "1_0": IPAllocation(pod_ref="default/bad"),
    }
    reservations = to_ip_reservation_list(allocations, first)
    assert reservations == [
        IPReservation(
            ip=ipaddress.ip_address("10.10.10.1"),
            container_id="c1",
            pod_ref="default/pod1",
            if_name="net1",
        )
    ]


def test_allocation_map_round_trip():
    first = ipaddress.ip_address("10.10.10.0")
    allocations = {
        "1": IPAllocation(pod_ref="default/pod1"),
        "2": IPAllocation(container_id="c", pod_ref="default/pod2", if_name="eth1"),
    }
    assert to_allocation_map(to_ip_reservation_list(allocations, first), first) == allocations


def test_allocation_map_requires_ip():
    with pytest.raises(ValueError):
        to_allocation_map([IPReservation(pod_ref="default/pod1")], ipaddress.ip_address("10.0.0.0"))


class _RecordingCluster:
    def __init__(self, error=None):
        self.error = error
        self.calls = []

    def update_ip_pool(self, pool, expected_resource_version):
        self.calls.append((pool, expected_resource_version))
        if self.error is not None:
            raise self.error
        return pool


def _pool():
    return IPPoolResource(
        metadata=ObjectMeta(name="pool1", namespace="default", resource_version="7"),
        range="10.10.10.0/16",
        allocations={"1": IPAllocation(pod_ref="default/pod1"), "2": IPAllocation(pod_ref="default/pod2")},
    )


def test_kubernetes_ip_pool_allocations():
    pool = KubernetesIPPool(_RecordingCluster(), ipaddress.ip_address("10.10.10.0"), _pool())
    assert sorted(str(r.ip) for r in pool.allocations()) == ["10.10.10.1", "10.10.10.2"]


def test_kubernetes_ip_pool_update_writes_with_expected_version():
    cluster = _RecordingCluster()
    pool = KubernetesIPPool(cluster, ipaddress.ip_address("10.10.10.0"), _pool())
    remaining = [r for r in pool.allocations() if r.pod_ref == "default/pod2"]
    pool.update(remaining)
    written, version = cluster.calls[0]
    assert version == "7"
    assert written.allocations == {"2": IPAllocation(pod_ref="default/pod2")}
    assert pool.allocations() == remaining


def test_kubernetes_ip_pool_update_conflict_is_temporary():
    cluster = _RecordingCluster(InvalidError("resource version mismatch"))
    pool = KubernetesIPPool(cluster, ipaddress.ip_address("10.10.10.0"), _pool())
    with pytest.raises(TemporaryError) as info:
        pool.update([])
    assert is_temporary(info.value)


def test_kubernetes_ip_pool_update_other_errors_propagate():
    cluster = _RecordingCluster(NotFoundError("gone"))
    pool = KubernetesIPPool(cluster, ipaddress.ip_address("10.10.10.0"), _pool())
    with pytest.raises(NotFoundError):
        pool.update([])