from __future__ import annotations

import math
from functools import lru_cache

import numpy as np
from pyproj import Transformer
from pyproj.exceptions import CRSError, ProjError

from src.orthomap.domain.exceptions import DecodeError
from src.orthomap.domain.models.geo import BoundingBox, LatLng
from src.orthomap.domain.spectral.raster import Bounds

GEOGRAPHIC_CRS = "EPSG:4326"


@lru_cache(maxsize=32)
def _transformer(source_crs: str) -> Transformer:
    return Transformer.from_crs(source_crs, GEOGRAPHIC_CRS, always_xy=True)


class GeoReprojector:
    """Places a projected raster extent on the map as longitude/latitude corners."""

    def __init__(self, default_source_crs: str | None = None) -> None:
        self._default_source_crs = default_source_crs

    def to_geographic(self, bounds: Bounds, source_crs: str | None = None) -> BoundingBox:
        """Transform ``(min_x, min_y, max_x, max_y)`` in ``source_crs`` to a geographic box.

        All four corners are transformed and enveloped, so the south-west corner
        never ends up north or east of the north-east one.
        """
        crs = source_crs or self._default_source_crs
        if not crs:
            raise DecodeError("Raster carries no coordinate reference system.")
        try:
            transformer = _transformer(crs)
            min_x, min_y, max_x, max_y = bounds
            lngs, lats = transformer.transform(
                np.array([min_x, min_x, max_x, max_x], dtype=np.float64),
                np.array([min_y, max_y, min_y, max_y], dtype=np.float64),
            )
        except (CRSError, ProjError) as exc:
            raise DecodeError(f"Cannot reproject extent from {crs}: {exc}") from exc

        lngs = [float(value) for value in lngs]
        lats = [float(value) for value in lats]
        if not all(math.isfinite(value) for value in lngs + lats):
            raise DecodeError(f"Extent {bounds} is outside the valid area of {crs}.")
        return BoundingBox(
            south_west=LatLng(lat=min(lats), lng=min(lngs)),
            north_east=LatLng(lat=max(lats), lng=max(lngs)),
        )
