"""Driver options, well-known keys and the identity service."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Callable

from .csi import PluginCapability, PluginInfo

logger = logging.getLogger(__name__)

DRIVER_NAME = "ebs.csi.aws.com"
DRIVER_VERSION = "v1.1.1"
DEFAULT_CSI_ENDPOINT = "unix://tmp/csi.sock"

AWS_PARTITION_KEY = "topology." + DRIVER_NAME + "/partition"
AWS_ACCOUNT_ID_KEY = "topology." + DRIVER_NAME + "/account-id"
AWS_REGION_KEY = "topology." + DRIVER_NAME + "/region"
AWS_OUTPOST_ID_KEY = "topology." + DRIVER_NAME + "/outpost-id"

WELL_KNOWN_TOPOLOGY_KEY = "topology.kubernetes.io/zone"
# Deprecated: prefer WELL_KNOWN_TOPOLOGY_KEY.
TOPOLOGY_KEY = "topology." + DRIVER_NAME + "/zone"


class Mode(str, enum.Enum):
    """Which services the driver runs."""

    CONTROLLER = "controller"
    NODE = "node"
    ALL = "all"


@dataclass
class DriverOptions:
    endpoint: str = DEFAULT_CSI_ENDPOINT
    extra_tags: dict[str, str] | None = None
    mode: Mode = Mode.ALL
    volume_attach_limit: int = 0
    kubernetes_cluster_id: str = ""
    aws_sdk_debug_log: bool = False


Option = Callable[[DriverOptions], None]


def with_endpoint(endpoint: str) -> Option:
    def apply(options: DriverOptions) -> None:
        options.endpoint = endpoint

    return apply


def with_extra_tags(extra_tags: dict[str, str] | None) -> Option:
    def apply(options: DriverOptions) -> None:
        options.extra_tags = extra_tags

    return apply


def with_extra_volume_tags(extra_volume_tags: dict[str, str] | None) -> Option:
    """Deprecated alias of :func:`with_extra_tags` that never overrides it."""

    def apply(options: DriverOptions) -> None:
        if options.extra_tags is None and extra_volume_tags is not None:
            logger.warning(
                "DEPRECATION WARNING: --extra-volume-tags is deprecated, please use --extra-tags instead"
            )
            options.extra_tags = extra_volume_tags

    return apply


def with_mode(mode: Mode | str) -> Option:
    """Select the operating mode; unknown modes raise ValueError."""
    try:
        resolved = Mode(mode)
    except ValueError:
        raise ValueError(f"unknown mode: {mode}") from None

    def apply(options: DriverOptions) -> None:
        options.mode = resolved

    return apply


def with_volume_attach_limit(volume_attach_limit: int) -> Option:
    def apply(options: DriverOptions) -> None:
        options.volume_attach_limit = volume_attach_limit

    return apply


def with_kubernetes_cluster_id(cluster_id: str) -> Option:
    def apply(options: DriverOptions) -> None:
        options.kubernetes_cluster_id = cluster_id

    return apply


def with_aws_sdk_debug_log(enable_sdk_debug_log: bool) -> Option:
    def apply(options: DriverOptions) -> None:
        options.aws_sdk_debug_log = enable_sdk_debug_log

    return apply


def build_options(*args: Option) -> DriverOptions:
    """Apply the given options, in order, to the default options."""
    logger.debug("Driver: %s Version: %s", DRIVER_NAME, DRIVER_VERSION)
    options = DriverOptions()
    for option in args:
        option(options)
    if not isinstance(options.mode, Mode):
        raise ValueError(f"unknown mode: {options.mode}")
    return options


class IdentityService:
    """Answers the CSI identity calls."""

    def get_plugin_info(self) -> PluginInfo:
        return PluginInfo(name=DRIVER_NAME, vendor_version=DRIVER_VERSION)

    def get_plugin_capabilities(self) -> list[PluginCapability]:
        return [
            PluginCapability.CONTROLLER_SERVICE,
            PluginCapability.VOLUME_ACCESSIBILITY_CONSTRAINTS,
        ]

    def probe(self) -> bool:
        """Report readiness; the driver is always ready once running."""
        return True