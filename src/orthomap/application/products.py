from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import numpy as np
from numpy.typing import NDArray

from src.orthomap.domain.exceptions import DecodeError
from src.orthomap.domain.models.geo import BoundingBox
from src.orthomap.domain.spectral.engine import SpectralDerivationEngine
from src.orthomap.domain.spectral.raster import DecodedRaster
from src.orthomap.infrastructure.artifacts import ArtifactStore
from src.orthomap.infrastructure.raster.png import write_rgba_png
from src.orthomap.infrastructure.raster.reader import read_raster
from src.orthomap.infrastructure.raster.reprojector import GeoReprojector

logger = logging.getLogger(__name__)

RasterReader = Callable[[str | Path], DecodedRaster]
ImageWriter = Callable[[NDArray[np.uint8], str | Path], Path]


@dataclass(frozen=True)
class RasterProducts:
    spectral_images: list[str]
    bounding_box: BoundingBox


class ProductBuilder:
    """Decode a finished raster, render its index images and place it on the map.

    Blocking; callers on the event loop run it in a worker thread.
    """

    def __init__(
        self,
        artifacts: ArtifactStore,
        engine: SpectralDerivationEngine,
        reprojector: GeoReprojector,
        *,
        reader: RasterReader = read_raster,
        writer: ImageWriter = write_rgba_png,
    ) -> None:
        self._artifacts = artifacts
        self._engine = engine
        self._reprojector = reprojector
        self._reader = reader
        self._writer = writer

    def build(self, task_id: str, raster_path: str | Path) -> RasterProducts:
        raster = self._reader(raster_path)
        if raster.bounds is None:
            raise DecodeError(f"Raster {raster_path} has no spatial extent.")

        images = self._engine.derive(raster)
        paths = [
            str(self._writer(image, self._artifacts.image_path(task_id, index)))
            for index, image in images.items()
        ]
        bounding_box = self._reprojector.to_geographic(raster.bounds, raster.crs)
        logger.info(
            "Built raster products",
            extra={"task_id": task_id, "images": len(paths), "crs": raster.crs},
        )
        return RasterProducts(spectral_images=paths, bounding_box=bounding_box)
