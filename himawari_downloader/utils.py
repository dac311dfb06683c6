"""
Utility functions for the Himawari downloader.

Provides helper functions for logging setup and formatting.
"""

import logging
import sys
from typing import Optional

# Approximate size of one 550px PNG tile
AVG_TILE_SIZE_KB = 300

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def setup_logging(verbosity: int = 0, stream=None) -> logging.Logger:
    """
    Configure the package logger.

    Args:
        verbosity: 0 for warnings only, 1 for info, 2 or more for debug
        stream: Output stream (defaults to stderr)

    Returns:
        The configured package logger
    """
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.WARNING

    logger = logging.getLogger("himawari_downloader")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(level)
    return logger


def format_bytes(size_bytes: float) -> str:
    """
    Format byte size as human readable string.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted string (e.g., "1.23 MB")
    """
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if size_bytes < 1024.0:
            return f"{size_bytes:.2f} {unit}"
        size_bytes /= 1024.0
    return f"{size_bytes:.2f} PB"


def estimate_download_size(tile_count: int,
                           avg_tile_size_kb: Optional[float] = None) -> dict:
    """
    Estimate download size for a given number of tiles.

    Args:
        tile_count: Number of tiles to download
        avg_tile_size_kb: Average tile size, defaults to AVG_TILE_SIZE_KB

    Returns:
        Dictionary with size estimates
    """
    total_kb = tile_count * (avg_tile_size_kb or AVG_TILE_SIZE_KB)

    return {
        'tile_count': tile_count,
        'estimated_kb': total_kb,
        'estimated_mb': total_kb / 1024,
        'formatted': format_bytes(total_kb * 1024)
    }


def format_summary(info: dict) -> str:
    """
    Format a download summary.

    Args:
        info: Dictionary with download information

    Returns:
        Multi-line summary text
    """
    lines = ["", "=" * 50, "Download Summary", "=" * 50]

    if 'source' in info:
        lines.append(f"Source: {info['source']}")

    if 'timestamp' in info:
        lines.append(f"Capture time: {info['timestamp']}")

    if 'resolution' in info:
        resolution = info['resolution']
        lines.append(f"Grid: {resolution}x{resolution}")

    if 'chunk_size' in info:
        lines.append(f"Tile size: {info['chunk_size']} px")
        if 'resolution' in info:
            size = info['resolution'] * info['chunk_size']
            lines.append(f"Image size: {size}x{size} px")

    if 'resolution' in info:
        tile_count = info['resolution'] ** 2
        size_info = estimate_download_size(tile_count)
        lines.append(f"Tiles: {tile_count}")
        lines.append(f"Estimated Size: {size_info['formatted']}")

    if 'workers' in info:
        lines.append(f"Workers: {info['workers']}")

    if 'output' in info:
        lines.append(f"Output: {info['output']}")

    lines.append("=" * 50)
    return "\n".join(lines)
