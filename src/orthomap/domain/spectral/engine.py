"""Spectral index derivation.

Every index is built in two pure passes: a reduction to per-channel
extrema over the whole image, then a map of each sample into an RGBA
byte. Nothing is shared between indices, so they can be derived on a
thread pool without changing the output.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor

import numpy as np
from numpy.typing import NDArray

from src.orthomap.domain.exceptions import DecodeError
from src.orthomap.domain.models.spectral_index import SPECTRAL_INDICES, SpectralIndex
from src.orthomap.domain.spectral.raster import BLUE, GREEN, NIR, RED, DecodedRaster

logger = logging.getLogger(__name__)

BACKGROUND_EPSILON = 1e-6
INDEX_EPSILON = 1e-6

Image = NDArray[np.uint8]


def background_mask(*channels: NDArray[np.float64]) -> NDArray[np.bool_]:
    """Pixels whose every sampled channel is within epsilon of zero."""
    mask = np.ones(channels[0].shape, dtype=bool)
    for channel in channels:
        mask &= np.abs(channel) < BACKGROUND_EPSILON
    return mask


def channel_extrema(channels: Sequence[NDArray[np.float64]]) -> list[tuple[float, float]]:
    """Reduction pass: image-wide ``(min, max)`` of each channel."""
    return [(float(channel.min()), float(channel.max())) for channel in channels]


def rescale(values: NDArray[np.float64], low: float, high: float) -> Image:
    """Map pass: linear ``[low, high] -> [0, 255]``; a flat channel maps to 0."""
    if high == low:
        return np.zeros(values.shape, dtype=np.uint8)
    normalized = np.clip((values - low) / (high - low), 0.0, 1.0)
    return np.floor(normalized * 255).astype(np.uint8)


def _to_byte(values: NDArray[np.float64]) -> Image:
    values = np.nan_to_num(np.floor(values), nan=0.0, posinf=255.0, neginf=0.0)
    return np.clip(values, 0, 255).astype(np.uint8)


def _blank(raster: DecodedRaster) -> Image:
    return np.zeros((raster.height, raster.width, 4), dtype=np.uint8)


class SpectralDerivationEngine:
    """Turns a decoded multi-band raster into one RGBA image per spectral index."""

    def __init__(self, max_workers: int = 1) -> None:
        self._max_workers = max(1, max_workers)
        self._builders: dict[SpectralIndex, Callable[[DecodedRaster], Image]] = {
            SpectralIndex.RGB: self.rgb,
            SpectralIndex.NDVI: self.ndvi,
            SpectralIndex.INFRARED: self.infrared,
            SpectralIndex.VARI: self.vari,
        }

    def derive(self, raster: DecodedRaster) -> dict[SpectralIndex, Image]:
        """Return ``(height, width, 4)`` uint8 images keyed by index, in fixed index order."""
        if self._max_workers == 1:
            results = {index: self._derive_one(index, raster) for index in SPECTRAL_INDICES}
        else:
            with ThreadPoolExecutor(max_workers=self._max_workers) as pool:
                futures = {
                    index: pool.submit(self._derive_one, index, raster)
                    for index in SPECTRAL_INDICES
                }
                results = {index: future.result() for index, future in futures.items()}
        return {index: results[index] for index in SPECTRAL_INDICES}

    def _derive_one(self, index: SpectralIndex, raster: DecodedRaster) -> Image:
        try:
            return self._builders[index](raster)
        except DecodeError as exc:
            logger.warning(
                "Spectral index not computable, emitting blank image",
                extra={"index": index.value, "reason": str(exc)},
            )
            return _blank(raster)

    def rgb(self, raster: DecodedRaster) -> Image:
        return self._false_colour(
            raster,
            (raster.band_or_red(RED), raster.band_or_red(GREEN), raster.band_or_red(BLUE)),
        )

    def infrared(self, raster: DecodedRaster) -> Image:
        # NIR, red and green land on the output R, G and B channels.
        return self._false_colour(
            raster,
            (raster.band_or_red(NIR), raster.band_or_red(RED), raster.band_or_red(GREEN)),
        )

    def ndvi(self, raster: DecodedRaster) -> Image:
        nir = raster.band_or_red(NIR)
        red = raster.band_or_red(RED)
        total = nir + red
        with np.errstate(divide="ignore", invalid="ignore"):
            ndvi = (nir - red) / (total + INDEX_EPSILON)
        transparent = background_mask(nir, red) | (total == 0)
        return self._gradient(raster, ndvi, transparent)

    def vari(self, raster: DecodedRaster) -> Image:
        red, green, blue = raster.band(RED), raster.band(GREEN), raster.band(BLUE)
        if red is None or green is None or blue is None:
            raise DecodeError(
                f"VARI needs red, green and blue bands, raster has {raster.band_count}."
            )
        denominator = green + red - blue + INDEX_EPSILON
        with np.errstate(divide="ignore", invalid="ignore"):
            vari = (green - red) / denominator
        transparent = background_mask(red, green, blue) | (denominator == 0)
        return self._gradient(raster, vari, transparent)

    @staticmethod
    def _false_colour(
        raster: DecodedRaster, channels: Sequence[NDArray[np.float64]]
    ) -> Image:
        image = _blank(raster)
        for slot, (values, (low, high)) in enumerate(zip(channels, channel_extrema(channels))):
            image[..., slot] = rescale(values, low, high)
        image[..., 3] = 255
        image[background_mask(*channels)] = 0
        return image

    @staticmethod
    def _gradient(
        raster: DecodedRaster,
        index_values: NDArray[np.float64],
        transparent: NDArray[np.bool_],
    ) -> Image:
        # [-1, 1] -> [0, 1], then red (low) to green (high).
        normalized = (index_values + 1) / 2
        image = _blank(raster)
        image[..., 0] = _to_byte((1 - normalized) * 255)
        image[..., 1] = _to_byte(normalized * 255)
        image[..., 3] = 255
        image[transparent] = 0
        return image
