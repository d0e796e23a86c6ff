"""Raster decoding with rasterio."""

from __future__ import annotations

import logging
from pathlib import Path

import rasterio
from rasterio.errors import RasterioError

from src.orthomap.domain.exceptions import DecodeError
from src.orthomap.domain.spectral.raster import DecodedRaster

logger = logging.getLogger(__name__)


def read_raster(path: str | Path) -> DecodedRaster:
    """Decode every band of a GeoTIFF (or any GDAL raster) plus its extent and CRS.

    :param path: Raster file path
    :returns: Decoded raster with float64 bands
    :raises DecodeError: If the file cannot be opened or read
    """
    try:
        with rasterio.open(path) as src:
            samples = src.read()
            left, bottom, right, top = src.bounds
            crs = src.crs.to_string() if src.crs else None
            width, height = src.width, src.height
    except RasterioError as exc:
        raise DecodeError(f"Cannot decode raster {path}: {exc}") from exc

    logger.debug(
        "Decoded raster",
        extra={"path": str(path), "bands": len(samples), "width": width, "height": height},
    )
    bounds = (min(left, right), min(bottom, top), max(left, right), max(bottom, top))
    return DecodedRaster.from_bands(width, height, list(samples), bounds=bounds, crs=crs)
