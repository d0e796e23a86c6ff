from enum import Enum


class SpectralIndex(str, Enum):
    RGB = "RGB"
    NDVI = "NDVI"
    INFRARED = "INFRARED"
    VARI = "VARI"

    @property
    def artifact_name(self) -> str:
        return self.value.lower()


SPECTRAL_INDICES: tuple[SpectralIndex, ...] = (
    SpectralIndex.RGB,
    SpectralIndex.NDVI,
    SpectralIndex.INFRARED,
    SpectralIndex.VARI,
)
