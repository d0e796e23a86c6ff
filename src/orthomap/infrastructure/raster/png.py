from __future__ import annotations

from pathlib import Path

import numpy as np
from numpy.typing import NDArray
from PIL import Image


def write_rgba_png(image: NDArray[np.uint8], path: str | Path) -> Path:
    """Write a ``(height, width, 4)`` uint8 array as an RGBA PNG."""
    if image.ndim != 3 or image.shape[2] != 4:
        raise ValueError(f"Expected RGBA array (rows, cols, 4), got shape {image.shape}")
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    Image.fromarray(np.ascontiguousarray(image, dtype=np.uint8)).save(target, format="PNG")
    return target
