# ebscsi

`ebscsi` holds the controller and identity side of a Container Storage
Interface (CSI) driver for elastic block-storage volumes. It validates
requests, works out availability zones and outpost ARNs from topology
requirements, builds tags for new volumes and snapshots, and makes sure that
only one create or delete runs at a time for a given volume or snapshot. The
calls to the cloud provider itself go through an interface that you supply.

## Installation

```
pip install ebscsi
```

For the test suite:

```
pip install "ebscsi[test]"
pytest
```

## Modules

- `ebscsi.driver`: the operating `Mode` (`controller`, `node`, `all`),
  `DriverOptions` and the option helpers `with_endpoint`, `with_extra_tags`,
  `with_extra_volume_tags`, `with_mode`, `with_volume_attach_limit`,
  `with_kubernetes_cluster_id` and `with_aws_sdk_debug_log`. Each helper
  returns a function that changes a `DriverOptions`; `build_options` applies
  them in order to the defaults. `with_extra_volume_tags` is a deprecated
  alias that only takes effect when no extra tags are set yet, and
  `with_mode` raises `ValueError` for an unknown mode. `IdentityService`
  answers `get_plugin_info`, `get_plugin_capabilities` and `probe`.
- `ebscsi.controller`: `ControllerService` handles `create_volume`,
  `delete_volume`, `controller_publish_volume`,
  `controller_unpublish_volume`, `validate_volume_capabilities`,
  `controller_expand_volume`, `create_snapshot`, `delete_snapshot`,
  `list_snapshots` and `controller_get_capabilities`. `get_capacity`,
  `list_volumes` and `controller_get_volume` raise `UNIMPLEMENTED`.
  `new_controller_service` builds a service from the driver options and a
  cloud factory, taking the region from the `AWS_REGION` environment
  variable or, when that is empty, from a metadata factory. The module also
  offers `is_valid_volume_capabilities`, `is_valid_volume_context` and
  `get_vol_size_bytes`.
- `ebscsi.cloud`: `Cloud` and `MetadataService` are the interfaces to
  implement. The module also holds the `Disk`, `Snapshot`, `DiskOptions`,
  `SnapshotOptions` and `ListSnapshotsResult` records and the `CloudError`
  exceptions: `NotFoundError`, `MultiDisksError`, `DiskExistsDiffSizeError`,
  `VolumeInUseError`, `MultiSnapshotsError` and `InvalidMaxResultsError`.
- `ebscsi.topology`: `pick_availability_zone`, `get_outpost_arn`,
  `build_outpost_arn`, `parse_arn` (returning an `Arn`) and
  `topology_segments`.
- `ebscsi.csi`: the request and response dataclasses and the `AccessMode`,
  `ControllerCapability` and `PluginCapability` enums.
- `ebscsi.status`: `StatusError` and its `Code`.
- `ebscsi.inflight`: `InFlight`, a thread-safe set of keys for operations
  that are still running.
- `ebscsi.units`: `round_up_bytes`, `gib_to_bytes` and `bytes_to_gib`.

## Example

```python
from ebscsi.controller import ControllerService
from ebscsi.csi import AccessMode, CapacityRange, CreateVolumeRequest, VolumeCapability
from ebscsi.driver import build_options, with_kubernetes_cluster_id
from ebscsi.inflight import InFlight
from ebscsi.status import StatusError

options = build_options(with_kubernetes_cluster_id("my-cluster"))
service = ControllerService(cloud=my_cloud, in_flight=InFlight(), driver_options=options)

request = CreateVolumeRequest(
    name="pvc-1234",
    capacity_range=CapacityRange(required_bytes=5 * 1024**3),
    volume_capabilities=[VolumeCapability(access_mode=AccessMode.SINGLE_NODE_WRITER)],
    parameters={"type": "gp3"},
)
try:
    response = service.create_volume(request)
except StatusError as err:
    print(err.code, err.message)
```

`my_cloud` stands for any object that implements `ebscsi.cloud.Cloud`.

## Behaviour

- Failing controller calls raise `StatusError` with a `Code`. The one
  exception: when looking up a snapshot by name fails with a `CloudError`
  other than `NotFoundError`, `create_snapshot` lets that error through.
- Only `SINGLE_NODE_WRITER` access is supported.
- Sizes are rounded up to whole GiB; without a capacity range a new volume
  gets 100 GiB.
- A volume created with a cluster ID is tagged
  `kubernetes.io/cluster/<id>=owned`, `Name=<id>-dynamic-<name>` and
  `KubernetesCluster=<id>`; a snapshot gets the first two. Extra tags from
  the options are added to both.
- A second create or delete for a key that is still in flight raises
  `ABORTED`.

## What it does not do

- It talks to no cloud provider and no metadata service: you supply the
  `Cloud` and `MetadataService` implementations.
- It runs no gRPC server and listens on no endpoint; the `endpoint` option
  is only stored.
- There is no node service: nothing here formats, mounts or resizes
  filesystems, even though `Mode.NODE` and `Mode.ALL` exist as options.
- There is no command-line program.