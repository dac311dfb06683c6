"""
Composition of downloaded tiles into one full-disk image.

Tiles are placed on a numpy canvas at the offset given by their own grid
coordinate, so arrival order does not affect the result.
"""

import logging
from typing import Iterable

import numpy as np
from PIL import Image

from .errors import CompositionError
from .grid import Tile, validate_chunk_size, validate_resolution

logger = logging.getLogger(__name__)


def _has_alpha(img: Image.Image) -> bool:
    return img.mode in ('RGBA', 'LA', 'PA') or 'transparency' in img.info


def _to_array(img: Image.Image) -> np.ndarray:
    """Convert a tile to an (h, w, 3) RGB or (h, w, 4) RGBA uint8 array."""
    mode = 'RGBA' if _has_alpha(img) else 'RGB'
    if img.mode != mode:
        # Grayscale is widened, palettes are expanded
        img = img.convert(mode)
    return np.asarray(img, dtype=np.uint8)


def _add_alpha(pixels: np.ndarray) -> np.ndarray:
    """Append an opaque alpha channel to an (h, w, 3) array."""
    opaque = np.full(pixels.shape[:2] + (1,), 255, dtype=np.uint8)
    return np.concatenate([pixels, opaque], axis=2)


def compose(resolution: int, chunk_size: int, tiles: Iterable[Tile]) -> Image.Image:
    """
    Assemble a full grid of tiles into one image.

    The tile sequence is drained completely. Each tile is written at
    (column * chunk_size, row * chunk_size). An error raised while the
    sequence is being drained (e.g. a failed download) propagates and no
    image is produced.

    Args:
        resolution: Tiles per axis
        chunk_size: Tile size in pixels
        tiles: Exactly resolution**2 tiles covering the grid, any order

    Returns:
        Image of (resolution * chunk_size) pixels on each axis; RGBA if
        any tile carries alpha (opaque elsewhere), RGB otherwise

    Raises:
        InvalidArgumentError: If resolution or chunk_size is illegal
        CompositionError: If the tiles do not cover the grid exactly once
    """
    validate_resolution(resolution)
    validate_chunk_size(chunk_size)

    total = resolution ** 2
    size = resolution * chunk_size

    # Create canvas; widened to RGBA on the first tile with alpha
    canvas = np.zeros((size, size, 3), dtype=np.uint8)
    placed = set()

    for tile in tiles:
        if len(placed) >= total:
            raise CompositionError(f"Received more than {total} tiles")

        column, row = tile.coordinate
        if not (0 <= column < resolution and 0 <= row < resolution):
            raise CompositionError(
                f"Tile {tuple(tile.coordinate)} is outside a {resolution}x{resolution} grid"
            )
        if tile.coordinate in placed:
            raise CompositionError(f"Duplicate tile {tuple(tile.coordinate)}")
        if tile.size != (chunk_size, chunk_size):
            raise CompositionError(
                f"Tile {tuple(tile.coordinate)} is {tile.size[0]}x{tile.size[1]}, "
                f"expected {chunk_size}x{chunk_size}"
            )

        px, py = tile.coordinate.offset(chunk_size)
        pixels = _to_array(tile.image)
        if pixels.shape[2] > canvas.shape[2]:
            canvas = _add_alpha(canvas)
        elif pixels.shape[2] < canvas.shape[2]:
            pixels = _add_alpha(pixels)
        canvas[py:py + chunk_size, px:px + chunk_size] = pixels
        placed.add(tile.coordinate)

    if len(placed) != total:
        raise CompositionError(f"Received {len(placed)} of {total} tiles")

    logger.info("Composed %d tiles into %dx%d image", total, size, size)
    return Image.fromarray(canvas)
