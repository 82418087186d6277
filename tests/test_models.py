import ipaddress

import pytest

from whereabouts.models import (
    NetworkStatus,
    ObjectMeta,
    IPPoolResource,
    Pod,
    OverlappingRangeIPReservation,
)


def test_parse_cidr_keeps_written_address():
    pool = IPPoolResource(range="10.10.10.0/16")
    first_ip, network = pool.parse_cidr()
    assert first_ip == ipaddress.ip_address("10.10.10.0")
    assert network.prefixlen == 16
    assert first_ip in network


def test_parse_cidr_ipv6():
    pool = IPPoolResource(range="2001:1b74:480:60b1::10/64")
    first_ip, network = pool.parse_cidr()
    assert first_ip == ipaddress.ip_address("2001:1b74:480:60b1::10")
    assert network.prefixlen == 64
    assert first_ip in network


@pytest.mark.parametrize("bad", ["", "10.0.0.0", "10.0.0.0/abc", "nonsense/8", "10.0.0.0/255.0.0.0"])
def test_parse_cidr_rejects_invalid(bad):
    with pytest.raises(ValueError):
        IPPoolResource(range=bad).parse_cidr()


def test_network_status_round_trip():
    status = NetworkStatus(name="net1", interface="net1", ips=["10.10.10.10"], mac="aa", default=True)
    assert NetworkStatus.from_dict(status.to_dict()) == status


def test_network_status_to_dict_omits_empty_fields():
    assert set(NetworkStatus(name="net1").to_dict()) == {"name"}


def test_network_status_from_null_is_empty():
    assert NetworkStatus.from_dict(None) == NetworkStatus()


@pytest.mark.parametrize(
    "data",
    [
        {"name": 5},
        {"ips": "10.0.0.1"},
        {"ips": [1]},
        {"default": "yes"},
        {"mtu": 1.5},
        {"dns": []},
    ],
)
def test_network_status_rejects_wrong_types(data):
    with pytest.raises(ValueError):
        NetworkStatus.from_dict(data)


def test_network_status_rejects_non_object():
    with pytest.raises(ValueError):
        NetworkStatus.from_dict(["a"])


def test_named_shortcuts():
    pod = Pod(metadata=ObjectMeta(name="pod1", namespace="default", annotations={"a": "b"}))
    assert (pod.name, pod.namespace, pod.annotations) == ("pod1", "default", {"a": "b"})
    reservation = OverlappingRangeIPReservation(metadata=ObjectMeta(name="10.10.10.1", namespace="ns"))
    assert (reservation.name, reservation.namespace) == ("10.10.10.1", "ns")