# whereabouts

IP address management for clustered networks. The package keeps track of
which addresses in a range are handed out to which pods, records
cluster-wide reservations for overlapping ranges, and removes allocations
that belong to pods which no longer exist.

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Modules

- `whereabouts.types`: configuration (`IPAMConfig`, `Net`, `NetConfList`,
  `RangeConfiguration`, `Address`, `KubernetesConfig`), `IPReservation`
  and the `Operation` enum (`ALLOCATE`, `DEALLOCATE`).
  `IPAMConfig.from_json` and `IPAMConfig.from_dict` read an IPAM section;
  overlapping ranges are on unless `enable_overlapping_ranges` is false.
  `sanitize_ip` parses an address, accepting IPv4 octets with leading
  zeros, and raises `ValueError` for anything else;
  `backwards_compatible_ip_address` returns `None` instead of raising.
- `whereabouts.storage`: the abstract `IPPool`, `Store` and
  `OverlappingRangeStore` interfaces, `TemporaryError` and `is_temporary`,
  plus the `REQUEST_TIMEOUT`, `DATASTORE_RETRIES` and `POD_REFRESH_RETRIES`
  settings.
- `whereabouts.models`: the cluster resources (`IPPoolResource`,
  `OverlappingRangeIPReservation`, `NodeSlicePool`, `Pod`, `ObjectMeta`,
  `NetworkStatus`, ...) and the errors `NotFoundError`,
  `AlreadyExistsError` and `InvalidError`.
- `whereabouts.pools`: pool naming (`ip_pool_name`, `normalize_range`,
  `normalize_ip`), offset arithmetic (`ip_add_offset`, `ip_get_offset`,
  `to_ip_reservation_list`, `to_allocation_map`) and `KubernetesIPPool`,
  which stores reservations as offsets from the address written in the
  pool's range. `KubernetesIPPool.update` only succeeds if the pool has not
  changed since it was read; otherwise it raises `TemporaryError`.
- `whereabouts.client`: `InMemoryCluster`, which holds IP pools, pods,
  overlapping range reservations and node slice pools, and `Client`, the
  cluster-wide queries the reconciler uses.
- `whereabouts.ipam`: `KubernetesIPAM` (reading and creating pools, node
  slice lookup, status) and `KubernetesOverlappingRangeStore` (reading,
  creating and deleting cluster-wide reservations), plus `get_node_name`,
  which reads `NODENAME` or `/etc/hostname`.
- `whereabouts.wrapped_pod`: reduces pods to the IPs of their non-default
  networks, taken from the `k8s.v1.cni.cncf.io/network-status` annotation.
- `whereabouts.reconciler`: `ReconcileLooper` and `reconcile_ips`.
- `whereabouts.version`: `BuildInfo` and the `get_version`,
  `get_git_sha`, `get_full_version` and `get_full_version_with_runtime_info`
  helpers. With no build information set, `get_full_version()` returns
  `"UNKNOWN"`.

## Examples

Pool names:

```python
from whereabouts.pools import PoolIdentifier, ip_pool_name

ip_pool_name(PoolIdentifier(ip_range="10.0.0.0/8", network_name="test"))
# 'test-10.0.0.0-8'
ip_pool_name(PoolIdentifier(ip_range="10.0.0.0/8", network_name="testnetwork", node_name="testnode"))
# 'testnetwork-testnode-10.0.0.0-8'
```

Reconciling an allocation whose pod is gone:

```python
from whereabouts.client import Client, InMemoryCluster
from whereabouts.models import IPAllocation, IPPoolResource, ObjectMeta
from whereabouts.reconciler import ReconcileLooper

cluster = InMemoryCluster(
    ip_pools=[
        IPPoolResource(
            metadata=ObjectMeta(name="pool1", namespace="default"),
            range="10.10.10.0/24",
            allocations={"1": IPAllocation(pod_ref="default/pod1")},
        )
    ]
)
looper = ReconcileLooper.from_client(Client(cluster))
looper.reconcile_ip_pools()
# [IPv4Address('10.10.10.1')]
looper.reconcile_overlapping_ip_addresses()
```

`reconcile_ips(client)` runs both steps and returns the freed pool IPs.
When a step fails it raises an exception; `reconcile_overlapping_ip_addresses`
raises `RuntimeError` naming the reservations it could not delete.

## What the package does not do

- It does not talk to a real cluster API server. All storage goes through
  `InMemoryCluster`; there is no kubeconfig or in-cluster connection.
- It does not allocate or release addresses for containers: there is no
  leader election and no allocation/deallocation loop, only the pool,
  reservation and node-slice storage those would use.
- It does not schedule reconciler runs or watch a configuration file for a
  cron expression; `reconcile_ips` performs a single pass when called.
- It has no command-line entry point.