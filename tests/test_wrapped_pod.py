import ipaddress
import json

import pytest

from whereabouts.models import (
    NETWORK_STATUS_ANNOTATION,
    NetworkStatus,
    ObjectMeta,
    Pod,
    PodCondition,
)
from whereabouts.pools import KubernetesIPPool
from whereabouts.models import IPAllocation, IPPoolResource
from whereabouts.wrapped_pod import (
    PodWrapper,
    compose_pod_ref,
    get_flat_ip_set,
    get_pod_refs_served_by_whereabouts,
    index_pods,
    is_ip_on_pod,
    is_pod_marked_for_deletion,
    network_status_from_pod,
    split_pod_ref,
    wrap_pod,
)


def _multus_status_list(*ips):
    return [
        NetworkStatus(name=f"net{i}", interface=f"network-{i}", ips=[ip]) for i, ip in enumerate(ips)
    ]


def _annotation(statuses):
    encoded = json.dumps([s.to_dict() for s in statuses] or None)
    return {NETWORK_STATUS_ANNOTATION: encoded}


def _pod_from_ips(*ips, name="", namespace=""):
    return Pod(
        metadata=ObjectMeta(
            name=name, namespace=namespace, annotations=_annotation(_multus_status_list(*ips))
        )
    )


@pytest.mark.parametrize(
    "ips",
    [
        (),
        ("192.168.14.14",),
        ("192.168.14.14", "10.10.10.10"),
    ],
)
def test_wrap_pod_extracts_ips(ips):
    assert wrap_pod(_pod_from_ips(*ips)).ips == set(ips)


def test_wrap_pod_skips_default_network():
    statuses = _multus_status_list("192.168.14.14", "10.10.10.10")
    statuses.append(NetworkStatus(ips=["14.15.16.20"], default=True))
    pod = Pod(metadata=ObjectMeta(annotations=_annotation(statuses)))
    ips = wrap_pod(pod).ips
    assert len(ips) == 2
    assert ips == {"192.168.14.14", "10.10.10.10"}


def test_wrap_pod_invalid_annotation_gives_no_ips():
    pod = Pod(metadata=ObjectMeta(annotations={NETWORK_STATUS_ANNOTATION: "this-wont-fly"}))
    assert wrap_pod(pod).ips == set()


def test_wrap_pod_without_annotation_gives_no_ips():
    pod = Pod(metadata=ObjectMeta(annotations={}))
    assert wrap_pod(pod).ips == set()


def test_wrap_pod_keeps_phase():
    pod = _pod_from_ips("10.10.10.10")
    pod.phase = "Pending"
    assert wrap_pod(pod) == PodWrapper(ips={"10.10.10.10"}, phase="Pending")


def test_get_flat_ip_set_raises_on_invalid_annotation():
    pod = Pod(metadata=ObjectMeta(annotations={NETWORK_STATUS_ANNOTATION: "this-wont-fly"}))
    with pytest.raises(ValueError):
        get_flat_ip_set(pod)


def test_get_flat_ip_set_raises_on_object_annotation():
    pod = Pod(metadata=ObjectMeta(annotations={NETWORK_STATUS_ANNOTATION: '{"name": "x"}'}))
    with pytest.raises(ValueError):
        get_flat_ip_set(pod)


def test_network_status_from_pod_defaults():
    assert network_status_from_pod(Pod()) == "[]"
    empty = Pod(metadata=ObjectMeta(annotations={NETWORK_STATUS_ANNOTATION: ""}))
    assert network_status_from_pod(empty) == "[]"
    assert network_status_from_pod(_pod_from_ips("10.10.10.10")) == _annotation(
        _multus_status_list("10.10.10.10")
    )[NETWORK_STATUS_ANNOTATION]


@pytest.mark.parametrize(
    "pods_info",
    [
        [],
        [(["10.10.10.10"], "pod1", "default")],
        [
            (["10.10.10.10"], "pod1", "default"),
            (["192.168.14.14", "200.200.200.200s"], "pod200", "secretns"),
        ],
    ],
)
def test_index_pods(pods_info):
    pods = [_pod_from_ips(*ips, name=name, namespace=namespace) for ips, name, namespace in pods_info]
    refs = {compose_pod_ref(pod) for pod in pods}
    expected = {f"{namespace}/{name}": PodWrapper(ips=set(ips)) for ips, name, namespace in pods_info}
    assert index_pods(pods, refs) == expected


def test_index_pods_skips_unserved_and_deleted_pods():
    served = _pod_from_ips("10.10.10.10", name="pod1", namespace="default")
    other = _pod_from_ips("10.10.10.11", name="pod2", namespace="default")
    deleted = _pod_from_ips("10.10.10.12", name="pod3", namespace="default")
    deleted.conditions = [
        PodCondition(type="DisruptionTarget", status="True", reason="DeletionByTaintManager")
    ]
    index = index_pods([served, other, deleted], {"default/pod1", "default/pod3"})
    assert list(index) == ["default/pod1"]


def test_is_pod_marked_for_deletion():
    marked = PodCondition(type="DisruptionTarget", status="True", reason="DeletionByTaintManager")
    assert is_pod_marked_for_deletion([PodCondition(type="Ready", status="True"), marked])
    assert not is_pod_marked_for_deletion(
        [PodCondition(type="DisruptionTarget", status="False", reason="DeletionByTaintManager")]
    )
    assert not is_pod_marked_for_deletion([])


def test_compose_and_split_pod_ref():
    pod = Pod(metadata=ObjectMeta(name="pod1", namespace="default"))
    assert split_pod_ref(compose_pod_ref(pod)) == ("default", "pod1")


@pytest.mark.parametrize("bad", ["pod1", "a/b/c", ""])
def test_split_pod_ref_rejects_bad_refs(bad):
    with pytest.raises(ValueError):
        split_pod_ref(bad)


def test_is_ip_on_pod():
    wrapper = PodWrapper(ips={"10.10.10.1"})
    assert is_ip_on_pod(wrapper, "default/pod1", "10.10.10.1")
    assert not is_ip_on_pod(wrapper, "default/pod1", "10.10.10.2")


def test_get_pod_refs_served_by_whereabouts():
    resource = IPPoolResource(
        metadata=ObjectMeta(name="pool1", namespace="default"),
        range="10.10.10.0/16",
        allocations={
            "1": IPAllocation(pod_ref="default/pod1"),
            "2": IPAllocation(pod_ref="default/pod2"),
            "3": IPAllocation(pod_ref="default/pod1"),
        },
    )
    pool = KubernetesIPPool(None, ipaddress.ip_address("10.10.10.0"), resource)
    assert get_pod_refs_served_by_whereabouts([pool]) == {"default/pod1", "default/pod2"}