import pytest

from ebscsi.csi import PluginCapability
from ebscsi.driver import (
    AWS_OUTPOST_ID_KEY,
    DEFAULT_CSI_ENDPOINT,
    DRIVER_NAME,
    DRIVER_VERSION,
    TOPOLOGY_KEY,
    DriverOptions,
    IdentityService,
    Mode,
    build_options,
    with_aws_sdk_debug_log,
    with_endpoint,
    with_extra_tags,
    with_extra_volume_tags,
    with_kubernetes_cluster_id,
    with_mode,
    with_volume_attach_limit,
)


def test_with_endpoint():
    options = DriverOptions()
    with_endpoint("endpoint")(options)
    assert options.endpoint == "endpoint"


def test_with_extra_tags():
    value = {"foo": "bar"}
    options = DriverOptions()
    with_extra_tags(value)(options)
    assert options.extra_tags == value


def test_with_extra_volume_tags():
    value = {"foo": "bar"}
    options = DriverOptions()
    with_extra_volume_tags(value)(options)
    assert options.extra_tags == value


def test_with_extra_volume_tags_no_overwrite():
    extra_tags = {"foo": "bar"}
    options = DriverOptions()
    with_extra_tags(extra_tags)(options)
    with_extra_volume_tags({"baz": "qux"})(options)
    assert options.extra_tags == extra_tags


def test_with_mode():
    options = DriverOptions()
    with_mode("node")(options)
    assert options.mode is Mode.NODE


def test_with_unknown_mode_raises():
    with pytest.raises(ValueError, match="unknown mode: mode"):
        with_mode("mode")


def test_with_volume_attach_limit():
    options = DriverOptions()
    with_volume_attach_limit(42)(options)
    assert options.volume_attach_limit == 42


def test_with_cluster_id():
    options = DriverOptions()
    with_kubernetes_cluster_id("test-cluster-id")(options)
    assert options.kubernetes_cluster_id == "test-cluster-id"


def test_with_aws_sdk_debug_log():
    options = DriverOptions()
    with_aws_sdk_debug_log(True)(options)
    assert options.aws_sdk_debug_log is True


def test_build_options_defaults():
    options = build_options()
    assert options.endpoint == DEFAULT_CSI_ENDPOINT
    assert options.mode is Mode.ALL
    assert options.extra_tags is None
    assert options.kubernetes_cluster_id == ""


def test_build_options_applies_in_order():
    options = build_options(
        with_mode(Mode.CONTROLLER),
        with_endpoint("first"),
        with_endpoint("second"),
        with_kubernetes_cluster_id("test-cluster-id"),
    )
    assert options.mode is Mode.CONTROLLER
    assert options.endpoint == "second"
    assert options.kubernetes_cluster_id == "test-cluster-id"


def test_build_options_rejects_invalid_mode():
    def bad(options):
        options.mode = "mode"

    with pytest.raises(ValueError):
        build_options(bad)


def test_topology_keys_use_driver_name():
    assert TOPOLOGY_KEY == "topology." + DRIVER_NAME + "/zone"
    assert AWS_OUTPOST_ID_KEY.startswith("topology." + DRIVER_NAME)


def test_plugin_info():
    info = IdentityService().get_plugin_info()
    assert info.name == "ebs.csi.aws.com"
    assert info.vendor_version == DRIVER_VERSION


def test_plugin_capabilities():
    assert IdentityService().get_plugin_capabilities() == [
        PluginCapability.CONTROLLER_SERVICE,
        PluginCapability.VOLUME_ACCESSIBILITY_CONSTRAINTS,
    ]


def test_probe_reports_ready():
    assert IdentityService().probe() is True