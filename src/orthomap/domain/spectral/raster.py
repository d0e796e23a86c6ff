from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np
from numpy.typing import ArrayLike, NDArray

from src.orthomap.domain.exceptions import DecodeError

RED, GREEN, BLUE, NIR = 0, 1, 2, 3

Bounds = tuple[float, float, float, float]


@dataclass(frozen=True)
class DecodedRaster:
    """Band samples of a raster as ``(height, width)`` float64 arrays.

    ``bounds`` is the ``(min_x, min_y, max_x, max_y)`` extent in ``crs``.
    """

    width: int
    height: int
    bands: tuple[NDArray[np.float64], ...]
    bounds: Bounds | None = None
    crs: str | None = None

    @classmethod
    def from_bands(
        cls,
        width: int,
        height: int,
        bands: Sequence[ArrayLike],
        *,
        bounds: Bounds | None = None,
        crs: str | None = None,
    ) -> DecodedRaster:
        """Build a raster from flat or 2-D band samples of any numeric dtype.

        NaN samples become 0 so they fall into the background mask.
        """
        if width <= 0 or height <= 0:
            raise DecodeError(f"Raster has no pixels ({width}x{height}).")
        if not bands:
            raise DecodeError("Raster has no bands.")
        converted = []
        for position, samples in enumerate(bands):
            array = np.asarray(samples, dtype=np.float64)
            if array.size != width * height:
                raise DecodeError(
                    f"Band {position} holds {array.size} samples, expected {width * height}."
                )
            converted.append(np.nan_to_num(array.reshape(height, width), nan=0.0))
        return cls(width=width, height=height, bands=tuple(converted), bounds=bounds, crs=crs)

    @property
    def band_count(self) -> int:
        return len(self.bands)

    def band(self, index: int) -> NDArray[np.float64] | None:
        if index < len(self.bands):
            return self.bands[index]
        return None

    def band_or_red(self, index: int) -> NDArray[np.float64]:
        """Band ``index``, falling back to band 0 when the raster lacks it."""
        band = self.band(index)
        return band if band is not None else self.bands[RED]
