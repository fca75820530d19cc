"""Availability zone and outpost selection from topology segments."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass

from .csi import Topology, TopologyRequirement
from .driver import (
    AWS_ACCOUNT_ID_KEY,
    AWS_OUTPOST_ID_KEY,
    AWS_PARTITION_KEY,
    AWS_REGION_KEY,
    TOPOLOGY_KEY,
    WELL_KNOWN_TOPOLOGY_KEY,
)

_ARN_PREFIX = "arn:"
_ARN_SECTIONS = 6


@dataclass(frozen=True)
class Arn:
    partition: str = ""
    service: str = ""
    region: str = ""
    account_id: str = ""
    resource: str = ""

    def __str__(self) -> str:
        return ":".join(
            ["arn", self.partition, self.service, self.region, self.account_id, self.resource]
        )


def parse_arn(text: str) -> Arn:
    """Parse an ARN string; raise ValueError if it is malformed."""
    if not text.startswith(_ARN_PREFIX):
        raise ValueError("arn: invalid prefix")
    sections = text.split(":", _ARN_SECTIONS - 1)
    if len(sections) != _ARN_SECTIONS:
        raise ValueError("arn: not enough sections")
    _, partition, service, region, account_id, resource = sections
    return Arn(partition, service, region, account_id, resource)


def _candidates(requirement: TopologyRequirement | None) -> Iterator[Topology]:
    if requirement is None:
        return
    yield from requirement.preferred
    yield from requirement.requisite


def pick_availability_zone(requirement: TopologyRequirement | None) -> str:
    """Pick one zone, preferred before requisite; empty string if none."""
    for topology in _candidates(requirement):
        segments = topology.segments
        if WELL_KNOWN_TOPOLOGY_KEY in segments:
            return segments[WELL_KNOWN_TOPOLOGY_KEY]
        if TOPOLOGY_KEY in segments:
            return segments[TOPOLOGY_KEY]
    return ""


def get_outpost_arn(requirement: TopologyRequirement | None) -> str:
    """Return the outpost ARN of the first topology naming an outpost."""
    for topology in _candidates(requirement):
        if AWS_OUTPOST_ID_KEY in topology.segments:
            return build_outpost_arn(topology.segments)
    return ""


def build_outpost_arn(segments: dict[str, str]) -> str:
    """Build an outpost ARN from segments; empty string if any part is missing."""
    partition = segments.get(AWS_PARTITION_KEY, "")
    region = segments.get(AWS_REGION_KEY, "")
    outpost_id = segments.get(AWS_OUTPOST_ID_KEY, "")
    account_id = segments.get(AWS_ACCOUNT_ID_KEY, "")
    if not (partition and region and outpost_id and account_id):
        return ""
    return f"arn:{partition}:outposts:{region}:{account_id}:outpost/{outpost_id}"


def topology_segments(zone: str, outpost_arn: str) -> dict[str, str]:
    """Segments describing where a disk lives, including its outpost if any."""
    segments = {TOPOLOGY_KEY: zone}
    try:
        arn = parse_arn(outpost_arn)
    except ValueError:
        return segments
    segments[AWS_REGION_KEY] = arn.region
    segments[AWS_PARTITION_KEY] = arn.partition
    segments[AWS_ACCOUNT_ID_KEY] = arn.account_id
    segments[AWS_OUTPOST_ID_KEY] = arn.resource.replace("outpost/", "")
    return segments