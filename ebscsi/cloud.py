"""Cloud-side data types, errors and the interfaces the controller relies on."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol, runtime_checkable

from .units import GIB

DEFAULT_VOLUME_SIZE = 100 * GIB

VOLUME_NAME_TAG_KEY = "CSIVolumeName"
SNAPSHOT_NAME_TAG_KEY = "CSIVolumeSnapshotName"
AWS_EBS_DRIVER_TAG_KEY = "ebs.csi.aws.com/cluster"

VOLUME_TYPE_IO1 = "io1"
VOLUME_TYPE_IO2 = "io2"
VOLUME_TYPE_GP2 = "gp2"
VOLUME_TYPE_GP3 = "gp3"
VOLUME_TYPE_SC1 = "sc1"
VOLUME_TYPE_ST1 = "st1"
VOLUME_TYPE_STANDARD = "standard"


@dataclass
class Disk:
    volume_id: str = ""
    capacity_gib: int = 0
    availability_zone: str = ""
    snapshot_id: str = ""
    outpost_arn: str = ""
    attachments: list[str] = field(default_factory=list)


@dataclass
class Snapshot:
    snapshot_id: str = ""
    source_volume_id: str = ""
    size: int = 0
    creation_time: datetime | None = None
    ready_to_use: bool = False


@dataclass
class DiskOptions:
    capacity_bytes: int = 0
    tags: dict[str, str] = field(default_factory=dict)
    volume_type: str = ""
    iops_per_gb: int = 0
    allow_iops_per_gb_increase: bool = False
    iops: int = 0
    throughput: int = 0
    availability_zone: str = ""
    outpost_arn: str = ""
    encrypted: bool = False
    kms_key_id: str = ""
    snapshot_id: str = ""


@dataclass
class SnapshotOptions:
    tags: dict[str, str] = field(default_factory=dict)


@dataclass
class ListSnapshotsResult:
    snapshots: list[Snapshot] = field(default_factory=list)
    next_token: str = ""


class CloudError(Exception):
    """Base class for errors reported by a cloud backend."""

    default_message = "cloud error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message if message is not None else self.default_message)


class NotFoundError(CloudError):
    default_message = "Resource was not found"


class MultiDisksError(CloudError):
    default_message = "Multiple disks with same name"


class DiskExistsDiffSizeError(CloudError):
    default_message = "There is already a disk with same name and different size"


class VolumeInUseError(CloudError):
    default_message = "Request volume is already attached to an instance"


class MultiSnapshotsError(CloudError):
    default_message = "Multiple snapshots with the same name found"


class InvalidMaxResultsError(CloudError):
    default_message = "MaxResults parameter must be 0 or greater than or equal to 5"


@runtime_checkable
class Cloud(Protocol):
    """Operations on disks, instances and snapshots; failures raise CloudError."""

    def create_disk(self, volume_name: str, options: DiskOptions) -> Disk:
        """Create a disk and return it."""

    def delete_disk(self, volume_id: str) -> bool:
        """Delete a disk; raise NotFoundError if it does not exist."""

    def attach_disk(self, volume_id: str, node_id: str) -> str:
        """Attach a disk to an instance and return the device path."""

    def detach_disk(self, volume_id: str, node_id: str) -> None:
        """Detach a disk from an instance."""

    def resize_disk(self, volume_id: str, new_size_bytes: int) -> int:
        """Resize a disk and return its new size in GiB."""

    def get_disk_by_name(self, name: str, capacity_bytes: int) -> Disk:
        """Find a disk by name, checking its size matches."""

    def get_disk_by_id(self, volume_id: str) -> Disk:
        """Find a disk by its identifier."""

    def is_exist_instance(self, node_id: str) -> bool:
        """Tell whether an instance exists."""

    def create_snapshot(self, volume_id: str, options: SnapshotOptions) -> Snapshot:
        """Create a snapshot of a disk."""

    def delete_snapshot(self, snapshot_id: str) -> bool:
        """Delete a snapshot; raise NotFoundError if it does not exist."""

    def get_snapshot_by_name(self, name: str) -> Snapshot:
        """Find a snapshot by name."""

    def get_snapshot_by_id(self, snapshot_id: str) -> Snapshot:
        """Find a snapshot by its identifier."""

    def list_snapshots(self, volume_id: str, max_results: int, next_token: str) -> ListSnapshotsResult:
        """List snapshots, optionally of one volume, one page at a time."""


@runtime_checkable
class MetadataService(Protocol):
    """Information about the instance the driver runs on."""

    def get_region(self) -> str:
        """Return the region of the current instance."""