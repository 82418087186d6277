"""Cluster resource models used by the storage backend and the reconciler."""

from __future__ import annotations

import ipaddress
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

NETWORK_STATUS_ANNOTATION = "k8s.v1.cni.cncf.io/network-status"
NETWORK_ATTACHMENT_ANNOTATION = "k8s.v1.cni.cncf.io/networks"

NAMESPACE_ALL = ""
NAMESPACE_SYSTEM = "kube-system"

POD_PENDING = "Pending"
POD_RUNNING = "Running"
POD_SUCCEEDED = "Succeeded"
POD_FAILED = "Failed"

DISRUPTION_TARGET = "DisruptionTarget"
CONDITION_TRUE = "True"
CONDITION_FALSE = "False"


class NotFoundError(LookupError):
    """The requested resource does not exist."""


class AlreadyExistsError(Exception):
    """A resource with the same name already exists."""


class InvalidError(Exception):
    """The request was rejected, for instance because a precondition failed."""


@dataclass
class ObjectMeta:
    """Identity and bookkeeping data shared by every resource."""

    name: str = ""
    namespace: str = ""
    resource_version: str = ""
    annotations: dict[str, str] = field(default_factory=dict)


class _Named:
    """Shortcuts to the name and namespace held in ``metadata``."""

    metadata: ObjectMeta

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace


@dataclass
class IPAllocation:
    """The owner of one allocated offset in a pool."""

    container_id: str = ""
    pod_ref: str = ""
    if_name: str = ""


@dataclass
class IPPoolResource(_Named):
    """A stored IP pool: its range and the allocations keyed by offset."""

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    range: str = ""
    allocations: dict[str, IPAllocation] = field(default_factory=dict)

    def parse_cidr(
        self,
    ) -> tuple[
        ipaddress.IPv4Address | ipaddress.IPv6Address,
        ipaddress.IPv4Network | ipaddress.IPv6Network,
    ]:
        """Return the address written in the range and the network it belongs to."""
        address, sep, prefix = self.range.partition("/")
        if not sep or not prefix.isascii() or not prefix.isdigit():
            raise ValueError(f"invalid CIDR address: {self.range}")
        try:
            ip = ipaddress.ip_address(address)
            network = ipaddress.ip_network(self.range, strict=False)
        except ValueError:
            raise ValueError(f"invalid CIDR address: {self.range}") from None
        return ip, network


@dataclass
class OverlappingRangeIPReservation(_Named):
    """A cluster-wide reservation of one IP, named after the normalized address."""

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    pod_ref: str = ""
    if_name: str = ""


@dataclass
class NodeSliceAllocation:
    """The slice of a range handed to one node."""

    node_name: str = ""
    slice_range: str = ""


@dataclass
class NodeSlicePool(_Named):
    """The division of a network range into per-node slices."""

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    range: str = ""
    slice_size: str = ""
    allocations: list[NodeSliceAllocation] = field(default_factory=list)


@dataclass
class PodCondition:
    """One status condition of a pod."""

    type: str = ""
    status: str = ""
    reason: str = ""


@dataclass
class Pod(_Named):
    """The parts of a pod the plugin looks at."""

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    phase: str = ""
    conditions: list[PodCondition] = field(default_factory=list)

    @property
    def annotations(self) -> dict[str, str]:
        return self.metadata.annotations


def _string(data: Mapping[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"network status field {key!r} must be a string")
    return value


def _string_list(data: Mapping[str, Any], key: str) -> list[str]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ValueError(f"network status field {key!r} must be an array of strings")
    return list(value)


def _integer(data: Mapping[str, Any], key: str) -> int:
    value = data.get(key)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"network status field {key!r} must be an integer")
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"network status field {key!r} must be an integer")
        value = int(value)
    return value


def _boolean(data: Mapping[str, Any], key: str) -> bool:
    value = data.get(key)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ValueError(f"network status field {key!r} must be a boolean")
    return value


@dataclass
class NetworkStatus:
    """One entry of a pod's network-status annotation."""

    name: str = ""
    interface: str = ""
    ips: list[str] = field(default_factory=list)
    mac: str = ""
    mtu: int = 0
    default: bool = False
    dns: dict[str, Any] = field(default_factory=dict)
    gateway: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> NetworkStatus:
        """Build an entry from a decoded JSON object; a null entry is empty."""
        if data is None:
            return cls()
        if not isinstance(data, Mapping):
            raise ValueError("network status entry must be a JSON object")
        dns = data.get("dns")
        if dns is None:
            dns = {}
        elif not isinstance(dns, Mapping):
            raise ValueError("network status field 'dns' must be an object")
        return cls(
            name=_string(data, "name"),
            interface=_string(data, "interface"),
            ips=_string_list(data, "ips"),
            mac=_string(data, "mac"),
            mtu=_integer(data, "mtu"),
            default=_boolean(data, "default"),
            dns=dict(dns),
            gateway=_string_list(data, "gateway"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON object for this entry, leaving out empty fields."""
        result: dict[str, Any] = {"name": self.name}
        if self.interface:
            result["interface"] = self.interface
        if self.ips:
            result["ips"] = list(self.ips)
        if self.mac:
            result["mac"] = self.mac
        if self.mtu:
            result["mtu"] = self.mtu
        if self.default:
            result["default"] = True
        if self.dns:
            result["dns"] = dict(self.dns)
        if self.gateway:
            result["gateway"] = list(self.gateway)
        return result