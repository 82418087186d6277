"""Configuration and reservation types for the IPAM plugin."""

from __future__ import annotations

import ipaddress
import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import timedelta
from enum import IntEnum
from typing import Any, Union

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

DEFAULT_LEADER_LEASE_DURATION = 1500
DEFAULT_LEADER_RENEW_DEADLINE = 1000
DEFAULT_LEADER_RETRY_PERIOD = 500
ADD_TIME_LIMIT = timedelta(minutes=2)
DEL_TIME_LIMIT = timedelta(minutes=1)
DEFAULT_OVERLAPPING_IPS_FEATURES = True
DEFAULT_SLEEP_FOR_RACE = 0


class Operation(IntEnum):
    """IP management operation identifiers."""

    ALLOCATE = 0
    DEALLOCATE = 1


def _sloppy_ipv4(text: str) -> str | None:
    """Rewrite a dotted quad whose octets carry leading zeros as plain decimal."""
    parts = text.split(".")
    if len(parts) != 4 or not all(part.isdigit() and part.isascii() for part in parts):
        return None
    octets = [int(part) for part in parts]
    if any(octet > 255 for octet in octets):
        return None
    return ".".join(str(octet) for octet in octets)


def sanitize_ip(address: str) -> IPAddress:
    """Parse an IP address, tolerating leading zeros in IPv4 octets."""
    if isinstance(address, str) and "%" not in address:
        try:
            return ipaddress.ip_address(address)
        except ValueError:
            pass
        if ":" in address:
            head, _, tail = address.rpartition(":")
            if "." in tail:
                fixed = _sloppy_ipv4(tail)
                if fixed is not None:
                    try:
                        return ipaddress.ip_address(f"{head}:{fixed}")
                    except ValueError:
                        pass
        else:
            fixed = _sloppy_ipv4(address)
            if fixed is not None:
                return ipaddress.ip_address(fixed)
    raise ValueError(f"{address} is not a valid IP address")


def backwards_compatible_ip_address(ip: str) -> IPAddress | None:
    """Return the parsed address, or None when it is not a valid IP."""
    try:
        return sanitize_ip(ip)
    except ValueError:
        return None


def _decode(data: Any, names: list[str]) -> dict[str, Any]:
    """Map JSON object keys onto field names: exact match first, then case-folded."""
    if not isinstance(data, Mapping):
        raise ValueError(f"expected a JSON object, got {type(data).__name__}")
    exact = set(names)
    folded: dict[str, str] = {}
    for name in names:
        folded.setdefault(name.casefold(), name)
    result: dict[str, Any] = {}
    for key, value in data.items():
        target = key if key in exact else folded.get(str(key).casefold())
        if target is None or value is None:
            continue
        result[target] = value
    return result


def _as_str(value: Any, name: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"field {name!r} must be a string")
    return value


def _as_int(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"field {name!r} must be an integer")
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"field {name!r} must be an integer")
        value = int(value)
    return value


def _as_bool(value: Any, name: str) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"field {name!r} must be a boolean")
    return value


def _as_list(value: Any, name: str) -> list[Any]:
    if not isinstance(value, list):
        raise ValueError(f"field {name!r} must be an array")
    return value


def _as_dict(value: Any, name: str) -> dict[str, Any]:
    if not isinstance(value, Mapping):
        raise ValueError(f"field {name!r} must be an object")
    return dict(value)


def _json_ip(value: Any, name: str) -> IPAddress | None:
    """Strictly parse an IP held in a JSON string; empty means unset."""
    text = _as_str(value, name)
    if not text:
        return None
    if "%" in text:
        raise ValueError(f"invalid IP address: {text}")
    try:
        return ipaddress.ip_address(text)
    except ValueError:
        raise ValueError(f"invalid IP address: {text}") from None


@dataclass
class KubernetesConfig:
    """Kubernetes-specific connection details."""

    kubeconfig_path: str = ""
    k8s_api_root: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> KubernetesConfig:
        values = _decode(data, ["kubeconfig", "k8s_api_root"])
        return cls(
            kubeconfig_path=_as_str(values.get("kubeconfig", ""), "kubeconfig"),
            k8s_api_root=_as_str(values.get("k8s_api_root", ""), "k8s_api_root"),
        )


@dataclass
class RangeConfiguration:
    """One IP range the plugin allocates from."""

    range: str = ""
    range_start: IPAddress | None = None
    range_end: IPAddress | None = None
    omit_ranges: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RangeConfiguration:
        values = _decode(data, ["exclude", "range", "range_start", "range_end"])
        return cls(
            range=_as_str(values.get("range", ""), "range"),
            range_start=_json_ip(values.get("range_start", ""), "range_start"),
            range_end=_json_ip(values.get("range_end", ""), "range_end"),
            omit_ranges=[
                _as_str(item, "exclude") for item in _as_list(values.get("exclude", []), "exclude")
            ],
        )


@dataclass
class Address:
    """A static address entry."""

    address_str: str = ""
    gateway: IPAddress | None = None
    address: ipaddress.IPv4Interface | ipaddress.IPv6Interface | None = None
    version: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Address:
        values = _decode(data, ["address", "gateway", "Address", "Version"])
        return cls(
            address_str=_as_str(values.get("address", ""), "address"),
            gateway=_json_ip(values.get("gateway", ""), "gateway"),
            version=_as_str(values.get("Version", ""), "Version"),
        )


@dataclass
class IPReservation:
    """An address reserved by the plugin."""

    ip: IPAddress | None = None
    container_id: str = ""
    pod_ref: str = ""
    if_name: str = ""
    is_allocated: bool = False

    def __str__(self) -> str:
        ip = "<nil>" if self.ip is None else str(self.ip)
        return f"IP: {ip} is reserved for pod: {self.pod_ref}"


_IPAM_KEYS = [
    "Name",
    "type",
    "routes",
    "datastore",
    "addresses",
    "ipRanges",
    "node_slice_size",
    "exclude",
    "dns",
    "range",
    "range_start",
    "range_end",
    "gateway",
    "etcd_host",
    "etcd_username",
    "etcd_password",
    "etcd_key_file",
    "etcd_cert_file",
    "etcd_ca_cert_file",
    "leader_lease_duration",
    "leader_renew_deadline",
    "leader_retry_period",
    "log_file",
    "log_level",
    "reconciler_cron_expression",
    "enable_overlapping_ranges",
    "sleep_for_race",
    "Gateway",
    "kubernetes",
    "configuration_path",
    "PodName",
    "PodNamespace",
    "network_name",
]

_IGNORED_STRING_KEYS = (
    "datastore",
    "etcd_host",
    "etcd_username",
    "etcd_password",
    "etcd_key_file",
    "etcd_cert_file",
    "etcd_ca_cert_file",
)


@dataclass
class IPAMConfig:
    """The IPAM section of a network configuration."""

    name: str = ""
    type: str = ""
    routes: list[dict[str, Any]] = field(default_factory=list)
    addresses: list[Address] = field(default_factory=list)
    ip_ranges: list[RangeConfiguration] = field(default_factory=list)
    omit_ranges: list[str] = field(default_factory=list)
    dns: dict[str, Any] = field(default_factory=dict)
    range: str = ""
    node_slice_size: str = ""
    range_start: IPAddress | None = None
    range_end: IPAddress | None = None
    gateway_str: str = ""
    leader_lease_duration: int = 0
    leader_renew_deadline: int = 0
    leader_retry_period: int = 0
    log_file: str = ""
    log_level: str = ""
    reconciler_cron_expression: str = ""
    overlapping_ranges: bool = DEFAULT_OVERLAPPING_IPS_FEATURES
    sleep_for_race: int = DEFAULT_SLEEP_FOR_RACE
    gateway: IPAddress | None = None
    kubernetes: KubernetesConfig = field(default_factory=KubernetesConfig)
    configuration_path: str = ""
    pod_name: str = ""
    pod_namespace: str = ""
    network_name: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> IPAMConfig:
        """Build a configuration from a decoded JSON object."""
        values = _decode(data, _IPAM_KEYS)

        def text(key: str) -> str:
            return _as_str(values.get(key, ""), key)

        def number(key: str, default: int = 0) -> int:
            return _as_int(values.get(key, default), key)

        for key in _IGNORED_STRING_KEYS:
            text(key)

        routes = [_as_dict(item, "routes") for item in _as_list(values.get("routes", []), "routes")]
        kubernetes = values.get("kubernetes")
        return cls(
            name=text("Name"),
            type=text("type"),
            routes=routes,
            addresses=[
                Address.from_dict(item) for item in _as_list(values.get("addresses", []), "addresses")
            ],
            ip_ranges=[
                RangeConfiguration.from_dict(item)
                for item in _as_list(values.get("ipRanges", []), "ipRanges")
            ],
            omit_ranges=[
                _as_str(item, "exclude") for item in _as_list(values.get("exclude", []), "exclude")
            ],
            dns=_as_dict(values.get("dns", {}), "dns"),
            range=text("range"),
            node_slice_size=text("node_slice_size"),
            range_start=backwards_compatible_ip_address(text("range_start")),
            range_end=backwards_compatible_ip_address(text("range_end")),
            gateway_str=text("gateway"),
            leader_lease_duration=number("leader_lease_duration"),
            leader_renew_deadline=number("leader_renew_deadline"),
            leader_retry_period=number("leader_retry_period"),
            log_file=text("log_file"),
            log_level=text("log_level"),
            reconciler_cron_expression=text("reconciler_cron_expression"),
            overlapping_ranges=_as_bool(
                values.get("enable_overlapping_ranges", DEFAULT_OVERLAPPING_IPS_FEATURES),
                "enable_overlapping_ranges",
            ),
            sleep_for_race=number("sleep_for_race", DEFAULT_SLEEP_FOR_RACE),
            gateway=backwards_compatible_ip_address(text("Gateway")),
            kubernetes=KubernetesConfig.from_dict(kubernetes)
            if kubernetes is not None
            else KubernetesConfig(),
            configuration_path=text("configuration_path"),
            pod_name=text("PodName"),
            pod_namespace=text("PodNamespace"),
            network_name=text("network_name"),
        )

    @classmethod
    def from_json(cls, text: str | bytes) -> IPAMConfig:
        """Parse a configuration from JSON text."""
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ValueError(f"invalid IPAM configuration: {exc}") from exc
        return cls.from_dict(data)

    def pod_ref(self) -> str:
        """Return the "namespace/name" reference of the pod."""
        return f"{self.pod_namespace}/{self.pod_name}"


@dataclass
class Net:
    """Top-level network configuration handed to the plugin."""

    name: str = ""
    cni_version: str = ""
    ipam: IPAMConfig | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Net:
        values = _decode(data, ["name", "cniVersion", "ipam"])
        ipam = values.get("ipam")
        return cls(
            name=_as_str(values.get("name", ""), "name"),
            cni_version=_as_str(values.get("cniVersion", ""), "cniVersion"),
            ipam=IPAMConfig.from_dict(ipam) if ipam is not None else None,
        )


@dataclass
class NetConfList:
    """An ordered list of network configurations."""

    cni_version: str = ""
    name: str = ""
    disable_check: bool = False
    plugins: list[Net] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> NetConfList:
        values = _decode(data, ["cniVersion", "name", "disableCheck", "plugins"])
        return cls(
            cni_version=_as_str(values.get("cniVersion", ""), "cniVersion"),
            name=_as_str(values.get("name", ""), "name"),
            disable_check=_as_bool(values.get("disableCheck", False), "disableCheck"),
            plugins=[
                Net.from_dict(item) for item in _as_list(values.get("plugins", []), "plugins")
            ],
        )