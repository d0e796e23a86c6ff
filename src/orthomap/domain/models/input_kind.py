from enum import Enum


class InputKind(str, Enum):
    """What a task is fed with at submission time."""

    CAPTURE_SET = "DRONE_IMAGES"
    RASTER = "SATELLITE_IMAGES"

    @property
    def uses_external_job(self) -> bool:
        return self is InputKind.CAPTURE_SET
