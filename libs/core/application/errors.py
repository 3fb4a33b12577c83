class FireWatchError(Exception):
    """Base error for the fire detection core."""


class AcquisitionError(FireWatchError):
    """Camera is unavailable or permission was denied."""


class ModelLoadError(FireWatchError):
    """Detection model or its resources could not be loaded."""


class MalformedDetectionError(FireWatchError):
    """Detection model returned data that cannot be fused."""


class AlertDeliveryError(FireWatchError):
    """Fire station notification was not accepted."""
