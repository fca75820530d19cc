"""The CSI controller service: volume, attachment and snapshot management."""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager

from . import cloud as cloudapi
from .cloud import (
    DEFAULT_VOLUME_SIZE,
    Cloud,
    CloudError,
    DiskExistsDiffSizeError,
    DiskOptions,
    InvalidMaxResultsError,
    MetadataService,
    NotFoundError,
    SnapshotOptions,
    VolumeInUseError,
)
from .csi import (
    AccessMode,
    ControllerCapability,
    ControllerExpandVolumeRequest,
    ControllerExpandVolumeResponse,
    ControllerPublishVolumeRequest,
    ControllerPublishVolumeResponse,
    ControllerUnpublishVolumeRequest,
    CreateSnapshotRequest,
    CreateSnapshotResponse,
    CreateVolumeRequest,
    CreateVolumeResponse,
    DeleteSnapshotRequest,
    DeleteVolumeRequest,
    ListSnapshotsRequest,
    ListSnapshotsResponse,
    Snapshot,
    SnapshotSource,
    Topology,
    ValidateVolumeCapabilitiesRequest,
    ValidateVolumeCapabilitiesResponse,
    Volume,
    VolumeCapability,
)
from .driver import DriverOptions
from .inflight import VOLUME_OPERATION_ALREADY_EXISTS_ERROR_MSG, InFlight
from .status import Code, StatusError
from .topology import get_outpost_arn, pick_availability_zone, topology_segments
from .units import gib_to_bytes, round_up_bytes

logger = logging.getLogger(__name__)

# Keys accepted in CreateVolume parameters (matched case-insensitively).
VOLUME_TYPE_KEY = "type"
IOPS_PER_GB_KEY = "iopspergb"
ALLOW_AUTO_IOPS_PER_GB_INCREASE_KEY = "allowautoiopspergbincrease"
IOPS_KEY = "iops"
THROUGHPUT_KEY = "throughput"
ENCRYPTED_KEY = "encrypted"
KMS_KEY_ID_KEY = "kmskeyid"
PVC_NAME_KEY = "csi.storage.k8s.io/pvc/name"
PVC_NAMESPACE_KEY = "csi.storage.k8s.io/pvc/namespace"
PV_NAME_KEY = "csi.storage.k8s.io/pv/name"
_DEPRECATED_FSTYPE_KEY = "fstype"

# Tags written on created volumes and snapshots.
PVC_NAME_TAG = "kubernetes.io/created-for/pvc/name"
PVC_NAMESPACE_TAG = "kubernetes.io/created-for/pvc/namespace"
PV_NAME_TAG = "kubernetes.io/created-for/pv/name"
RESOURCE_LIFECYCLE_TAG_PREFIX = "kubernetes.io/cluster/"
RESOURCE_LIFECYCLE_OWNED = "owned"
NAME_TAG = "Name"
KUBERNETES_CLUSTER_TAG = "KubernetesCluster"
IS_MANAGED_BY_DRIVER = "true"

DEVICE_PATH_KEY = "devicePath"
VOLUME_ATTRIBUTE_PARTITION = "partition"

SUPPORTED_ACCESS_MODES = frozenset({AccessMode.SINGLE_NODE_WRITER})

CONTROLLER_CAPABILITIES = (
    ControllerCapability.CREATE_DELETE_VOLUME,
    ControllerCapability.PUBLISH_UNPUBLISH_VOLUME,
    ControllerCapability.CREATE_DELETE_SNAPSHOT,
    ControllerCapability.LIST_SNAPSHOTS,
    ControllerCapability.EXPAND_VOLUME,
)

_INTEGER = re.compile(r"[+-]?[0-9]+")

CloudFactory = Callable[[str, bool], Cloud]
MetadataFactory = Callable[[], MetadataService]


def _atoi(value: str) -> int:
    if not _INTEGER.fullmatch(value):
        raise ValueError(f'strconv.Atoi: parsing "{value}": invalid syntax')
    return int(value)


def _mode_name(capability: VolumeCapability) -> str:
    if capability.access_mode is None:
        return AccessMode.UNKNOWN.name
    return AccessMode(capability.access_mode).name


def _unsupported_capabilities(capabilities: Iterable[VolumeCapability]) -> StatusError:
    modes = ", ".join(_mode_name(capability) for capability in capabilities)
    return StatusError(
        Code.INVALID_ARGUMENT,
        f"Volume capabilities {modes} not supported. Only AccessModes[ReadWriteOnce] supported.",
    )


def is_valid_volume_capabilities(capabilities: Iterable[VolumeCapability]) -> bool:
    """True when every capability asks for a supported access mode."""
    return all(capability.access_mode in SUPPORTED_ACCESS_MODES for capability in capabilities)


def is_valid_volume_context(volume_context: dict[str, str]) -> bool:
    """Check the attributes of a volume context that the driver understands."""
    partition = volume_context.get(VOLUME_ATTRIBUTE_PARTITION)
    if partition is None:
        return True
    try:
        number = _atoi(partition)
    except ValueError:
        logger.error("failed to parse partition %s as int", partition)
        return False
    if number < 0:
        logger.error("invalid partition config, partition = %s", partition)
        return False
    return True


def get_vol_size_bytes(request: CreateVolumeRequest) -> int:
    """Size to allocate for a new volume, rounded up to whole GiB."""
    capacity = request.capacity_range
    if capacity is None:
        return DEFAULT_VOLUME_SIZE
    size = round_up_bytes(capacity.required_bytes)
    if 0 < capacity.limit_bytes < size:
        raise StatusError(
            Code.INVALID_ARGUMENT, "After round-up, volume size exceeds the limit specified"
        )
    return size


def _validate_create_volume_request(request: CreateVolumeRequest) -> None:
    if not request.name:
        raise StatusError(Code.INVALID_ARGUMENT, "Volume name not provided")
    if not request.volume_capabilities:
        raise StatusError(Code.INVALID_ARGUMENT, "Volume capabilities not provided")
    if not is_valid_volume_capabilities(request.volume_capabilities):
        raise _unsupported_capabilities(request.volume_capabilities)


def _new_create_volume_response(disk: cloudapi.Disk) -> CreateVolumeResponse:
    source = SnapshotSource(disk.snapshot_id) if disk.snapshot_id else None
    return CreateVolumeResponse(
        volume=Volume(
            volume_id=disk.volume_id,
            capacity_bytes=gib_to_bytes(disk.capacity_gib),
            volume_context={},
            accessible_topology=[
                Topology(segments=topology_segments(disk.availability_zone, disk.outpost_arn))
            ],
            content_source=source,
        )
    )


def _to_csi_snapshot(snapshot: cloudapi.Snapshot) -> Snapshot:
    return Snapshot(
        snapshot_id=snapshot.snapshot_id,
        source_volume_id=snapshot.source_volume_id,
        size_bytes=snapshot.size,
        creation_time=snapshot.creation_time,
        ready_to_use=snapshot.ready_to_use,
    )


def _new_list_snapshots_response(result: cloudapi.ListSnapshotsResult) -> ListSnapshotsResponse:
    return ListSnapshotsResponse(
        entries=[_to_csi_snapshot(snapshot) for snapshot in result.snapshots],
        next_token=result.next_token,
    )


class ControllerService:
    """Handles controller calls by delegating to a cloud backend."""

    def __init__(
        self,
        cloud: Cloud,
        driver_options: DriverOptions | None = None,
        in_flight: InFlight | None = None,
    ) -> None:
        self.cloud = cloud
        self.driver_options = driver_options if driver_options is not None else DriverOptions()
        self.in_flight = in_flight if in_flight is not None else InFlight()

    @contextmanager
    def _claim(self, key: str, message: str) -> Iterator[None]:
        if not self.in_flight.insert(key):
            raise StatusError(Code.ABORTED, message)
        try:
            yield
        finally:
            self.in_flight.delete(key)

    def _cluster_tags(self, resource_name: str) -> dict[str, str]:
        cluster_id = self.driver_options.kubernetes_cluster_id
        if not cluster_id:
            return {}
        return {
            RESOURCE_LIFECYCLE_TAG_PREFIX + cluster_id: RESOURCE_LIFECYCLE_OWNED,
            NAME_TAG: f"{cluster_id}-dynamic-{resource_name}",
        }

    def create_volume(self, request: CreateVolumeRequest) -> CreateVolumeResponse:
        logger.debug("CreateVolume: called with args %r", request)
        _validate_create_volume_request(request)
        size_bytes = get_vol_size_bytes(request)
        name = request.name

        with self._claim(name, f"Create volume request for {name} is already in progress"):
            try:
                disk = self.cloud.get_disk_by_name(name, size_bytes)
            except NotFoundError:
                disk = None
            except DiskExistsDiffSizeError as err:
                raise StatusError(Code.ALREADY_EXISTS, str(err)) from err
            except Exception as err:
                raise StatusError(Code.INTERNAL, str(err)) from err

            options = DiskOptions(
                capacity_bytes=size_bytes,
                tags={
                    cloudapi.VOLUME_NAME_TAG_KEY: name,
                    cloudapi.AWS_EBS_DRIVER_TAG_KEY: IS_MANAGED_BY_DRIVER,
                },
            )
            self._apply_parameters(options, request.parameters or {})

            if options.volume_type == cloudapi.VOLUME_TYPE_IO1 and options.iops_per_gb == 0:
                raise StatusError(
                    Code.INVALID_ARGUMENT,
                    "The parameter IOPSPerGB must be specified for io1 volumes",
                )

            snapshot_id = ""
            source = request.volume_content_source
            if source is not None:
                if not isinstance(source, SnapshotSource):
                    raise StatusError(Code.INVALID_ARGUMENT, "Unsupported volumeContentSource type")
                snapshot_id = source.snapshot_id

            if disk is not None:
                if disk.snapshot_id != snapshot_id:
                    raise StatusError(
                        Code.ALREADY_EXISTS,
                        "Volume already exists, but was restored from a different snapshot "
                        f"than {snapshot_id}",
                    )
                return _new_create_volume_response(disk)

            requirement = request.accessibility_requirements
            options.availability_zone = pick_availability_zone(requirement)
            options.outpost_arn = get_outpost_arn(requirement)
            options.snapshot_id = snapshot_id

            cluster_id = self.driver_options.kubernetes_cluster_id
            options.tags.update(self._cluster_tags(name))
            if cluster_id:
                options.tags[KUBERNETES_CLUSTER_TAG] = cluster_id
            options.tags.update(self.driver_options.extra_tags or {})

            try:
                disk = self.cloud.create_disk(name, options)
            except Exception as err:
                code = Code.NOT_FOUND if isinstance(err, NotFoundError) else Code.INTERNAL
                raise StatusError(code, f'Could not create volume "{name}": {err}') from err
            return _new_create_volume_response(disk)

    @staticmethod
    def _apply_parameters(options: DiskOptions, parameters: dict[str, str]) -> None:
        def parse(value: str, what: str) -> int:
            try:
                return _atoi(value)
            except ValueError as err:
                raise StatusError(
                    Code.INVALID_ARGUMENT, f"Could not parse invalid {what}: {err}"
                ) from err

        for key, value in parameters.items():
            match key.lower():
                case "fstype":
                    logger.warning(
                        '"fstype" is deprecated, please use "csi.storage.k8s.io/fstype" instead'
                    )
                case "type":
                    options.volume_type = value
                case "iopspergb":
                    options.iops_per_gb = parse(value, "iopsPerGB")
                case "allowautoiopspergbincrease":
                    options.allow_iops_per_gb_increase = value == "true"
                case "iops":
                    options.iops = parse(value, "iops")
                case "throughput":
                    options.throughput = parse(value, "throughput")
                case "encrypted":
                    options.encrypted = value == "true"
                case "kmskeyid":
                    options.kms_key_id = value
                case "csi.storage.k8s.io/pvc/name":
                    options.tags[PVC_NAME_TAG] = value
                case "csi.storage.k8s.io/pvc/namespace":
                    options.tags[PVC_NAMESPACE_TAG] = value
                case "csi.storage.k8s.io/pv/name":
                    options.tags[PV_NAME_TAG] = value
                case _:
                    raise StatusError(
                        Code.INVALID_ARGUMENT, f"Invalid parameter key {key} for CreateVolume"
                    )

    def delete_volume(self, request: DeleteVolumeRequest) -> None:
        logger.debug("DeleteVolume: called with args %r", request)
        volume_id = request.volume_id
        if not volume_id:
            raise StatusError(Code.INVALID_ARGUMENT, "Volume ID not provided")

        with self._claim(volume_id, VOLUME_OPERATION_ALREADY_EXISTS_ERROR_MSG % volume_id):
            try:
                self.cloud.delete_disk(volume_id)
            except NotFoundError:
                logger.debug("DeleteVolume: volume not found, returning with success")
            except Exception as err:
                raise StatusError(
                    Code.INTERNAL, f'Could not delete volume ID "{volume_id}": {err}'
                ) from err

    def controller_publish_volume(
        self, request: ControllerPublishVolumeRequest
    ) -> ControllerPublishVolumeResponse:
        logger.debug("ControllerPublishVolume: called with args %r", request)
        volume_id = request.volume_id
        node_id = request.node_id
        if not volume_id:
            raise StatusError(Code.INVALID_ARGUMENT, "Volume ID not provided")
        if not node_id:
            raise StatusError(Code.INVALID_ARGUMENT, "Node ID not provided")
        capability = request.volume_capability
        if capability is None:
            raise StatusError(Code.INVALID_ARGUMENT, "Volume capability not provided")
        if not is_valid_volume_capabilities([capability]):
            raise _unsupported_capabilities([capability])

        if not self.cloud.is_exist_instance(node_id):
            raise StatusError(Code.NOT_FOUND, f'Instance "{node_id}" not found')
        try:
            disk = self.cloud.get_disk_by_id(volume_id)
        except NotFoundError as err:
            raise StatusError(Code.NOT_FOUND, "Volume not found") from err
        except Exception as err:
            raise StatusError(
                Code.INTERNAL, f'Could not get volume with ID "{volume_id}": {err}'
            ) from err

        try:
            device_path = self.cloud.attach_disk(volume_id, node_id)
        except VolumeInUseError as err:
            raise StatusError(Code.FAILED_PRECONDITION, ",".join(disk.attachments)) from err
        except Exception as err:
            raise StatusError(
                Code.INTERNAL,
                f'Could not attach volume "{volume_id}" to node "{node_id}": {err}',
            ) from err
        logger.debug(
            "ControllerPublishVolume: volume %s attached to node %s through device %s",
            volume_id,
            node_id,
            device_path,
        )
        return ControllerPublishVolumeResponse(publish_context={DEVICE_PATH_KEY: device_path})

    def controller_unpublish_volume(self, request: ControllerUnpublishVolumeRequest) -> None:
        logger.debug("ControllerUnpublishVolume: called with args %r", request)
        volume_id = request.volume_id
        node_id = request.node_id
        if not volume_id:
            raise StatusError(Code.INVALID_ARGUMENT, "Volume ID not provided")
        if not node_id:
            raise StatusError(Code.INVALID_ARGUMENT, "Node ID not provided")

        try:
            self.cloud.detach_disk(volume_id, node_id)
        except NotFoundError:
            return
        except Exception as err:
            raise StatusError(
                Code.INTERNAL,
                f'Could not detach volume "{volume_id}" from node "{node_id}": {err}',
            ) from err
        logger.debug("ControllerUnpublishVolume: volume %s detached from node %s", volume_id, node_id)

    def controller_get_capabilities(self) -> list[ControllerCapability]:
        return list(CONTROLLER_CAPABILITIES)

    def get_capacity(self, request: object) -> None:
        raise StatusError(Code.UNIMPLEMENTED, "")

    def list_volumes(self, request: object) -> None:
        raise StatusError(Code.UNIMPLEMENTED, "")

    def validate_volume_capabilities(
        self, request: ValidateVolumeCapabilitiesRequest
    ) -> ValidateVolumeCapabilitiesResponse:
        logger.debug("ValidateVolumeCapabilities: called with args %r", request)
        volume_id = request.volume_id
        if not volume_id:
            raise StatusError(Code.INVALID_ARGUMENT, "Volume ID not provided")
        capabilities = request.volume_capabilities
        if not capabilities:
            raise StatusError(Code.INVALID_ARGUMENT, "Volume capabilities not provided")

        try:
            self.cloud.get_disk_by_id(volume_id)
        except NotFoundError as err:
            raise StatusError(Code.NOT_FOUND, "Volume not found") from err
        except Exception as err:
            raise StatusError(
                Code.INTERNAL, f'Could not get volume with ID "{volume_id}": {err}'
            ) from err

        confirmed = capabilities if is_valid_volume_capabilities(capabilities) else None
        return ValidateVolumeCapabilitiesResponse(confirmed=confirmed)

    def controller_expand_volume(
        self, request: ControllerExpandVolumeRequest
    ) -> ControllerExpandVolumeResponse:
        logger.debug("ControllerExpandVolume: called with args %r", request)
        volume_id = request.volume_id
        if not volume_id:
            raise StatusError(Code.INVALID_ARGUMENT, "Volume ID not provided")
        capacity = request.capacity_range
        if capacity is None:
            raise StatusError(Code.INVALID_ARGUMENT, "Capacity range not provided")

        new_size = round_up_bytes(capacity.required_bytes)
        if 0 < capacity.limit_bytes < new_size:
            raise StatusError(
                Code.INVALID_ARGUMENT, "After round-up, volume size exceeds the limit specified"
            )

        try:
            actual_gib = self.cloud.resize_disk(volume_id, new_size)
        except Exception as err:
            raise StatusError(
                Code.INTERNAL, f'Could not resize volume "{volume_id}": {err}'
            ) from err

        capability = request.volume_capability
        # A raw block device needs no filesystem expansion on the node.
        node_expansion_required = not (capability is not None and capability.is_block())
        return ControllerExpandVolumeResponse(
            capacity_bytes=gib_to_bytes(actual_gib),
            node_expansion_required=node_expansion_required,
        )

    def controller_get_volume(self, request: object) -> None:
        raise StatusError(Code.UNIMPLEMENTED, "")

    def create_snapshot(self, request: CreateSnapshotRequest) -> CreateSnapshotResponse:
        logger.debug("CreateSnapshot: called with args %r", request)
        name = request.name
        volume_id = request.source_volume_id
        if not name:
            raise StatusError(Code.INVALID_ARGUMENT, "Snapshot name not provided")
        if not volume_id:
            raise StatusError(Code.INVALID_ARGUMENT, "Snapshot volume source ID not provided")

        with self._claim(name, VOLUME_OPERATION_ALREADY_EXISTS_ERROR_MSG % name):
            try:
                snapshot = self.cloud.get_snapshot_by_name(name)
            except NotFoundError:
                snapshot = None
            except CloudError as err:
                logger.error("Error looking for the snapshot %s: %s", name, err)
                raise

            if snapshot is not None:
                if snapshot.source_volume_id != volume_id:
                    raise StatusError(
                        Code.ALREADY_EXISTS,
                        f"Snapshot {name} already exists for different volume "
                        f"({snapshot.source_volume_id})",
                    )
                logger.debug(
                    "Snapshot %s of volume %s already exists; nothing to do", name, volume_id
                )
                return CreateSnapshotResponse(snapshot=_to_csi_snapshot(snapshot))

            tags = {
                cloudapi.SNAPSHOT_NAME_TAG_KEY: name,
                cloudapi.AWS_EBS_DRIVER_TAG_KEY: IS_MANAGED_BY_DRIVER,
            }
            tags.update(self._cluster_tags(name))
            tags.update(self.driver_options.extra_tags or {})

            try:
                snapshot = self.cloud.create_snapshot(volume_id, SnapshotOptions(tags=tags))
            except Exception as err:
                raise StatusError(
                    Code.INTERNAL, f'Could not create snapshot "{name}": {err}'
                ) from err
            return CreateSnapshotResponse(snapshot=_to_csi_snapshot(snapshot))

    def delete_snapshot(self, request: DeleteSnapshotRequest) -> None:
        logger.debug("DeleteSnapshot: called with args %r", request)
        snapshot_id = request.snapshot_id
        if not snapshot_id:
            raise StatusError(Code.INVALID_ARGUMENT, "Snapshot ID not provided")

        with self._claim(
            snapshot_id, f"DeleteSnapshot for Snapshot {snapshot_id} is already in progress"
        ):
            try:
                self.cloud.delete_snapshot(snapshot_id)
            except NotFoundError:
                logger.debug("DeleteSnapshot: snapshot not found, returning with success")
            except Exception as err:
                raise StatusError(
                    Code.INTERNAL, f'Could not delete snapshot ID "{snapshot_id}": {err}'
                ) from err

    def list_snapshots(self, request: ListSnapshotsRequest) -> ListSnapshotsResponse:
        logger.debug("ListSnapshots: called with args %r", request)
        snapshot_id = request.snapshot_id
        if snapshot_id:
            try:
                snapshot = self.cloud.get_snapshot_by_id(snapshot_id)
            except NotFoundError:
                logger.debug("ListSnapshots: snapshot not found, returning with success")
                return ListSnapshotsResponse()
            except Exception as err:
                raise StatusError(
                    Code.INTERNAL, f'Could not get snapshot ID "{snapshot_id}": {err}'
                ) from err
            return _new_list_snapshots_response(cloudapi.ListSnapshotsResult(snapshots=[snapshot]))

        try:
            result = self.cloud.list_snapshots(
                request.source_volume_id, request.max_entries, request.starting_token
            )
        except NotFoundError:
            logger.debug("ListSnapshots: snapshot not found, returning with success")
            return ListSnapshotsResponse()
        except InvalidMaxResultsError as err:
            raise StatusError(
                Code.INVALID_ARGUMENT, f"Error mapping MaxEntries to AWS MaxResults: {err}"
            ) from err
        except Exception as err:
            raise StatusError(Code.INTERNAL, f"Could not list snapshots: {err}") from err
        return _new_list_snapshots_response(result)


def new_controller_service(
    driver_options: DriverOptions,
    cloud_factory: CloudFactory,
    metadata_factory: MetadataFactory | None = None,
) -> ControllerService:
    """Build a controller service; the region comes from AWS_REGION or the metadata service."""
    region = os.environ.get("AWS_REGION", "")
    if not region:
        if metadata_factory is None:
            raise RuntimeError("AWS_REGION is not set and no metadata service is available")
        logger.debug("Retrieving region from metadata service")
        region = metadata_factory().get_region()
    cloud = cloud_factory(region, driver_options.aws_sdk_debug_log)
    return ControllerService(cloud=cloud, driver_options=driver_options, in_flight=InFlight())