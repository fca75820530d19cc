"""Controller and identity services, data types and helpers for a block-storage CSI driver."""

__version__ = "1.1.1"
__all__ = ["cloud", "controller", "csi", "driver", "inflight", "status", "topology", "units"]