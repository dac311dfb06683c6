"""
Command line interface for the Himawari downloader.

Downloads a full-disk image grid, composes it and saves it to a file
whose format follows the file extension.
"""

import sys
import traceback
from datetime import datetime
from typing import Optional

import click
from tqdm import tqdm

from . import __version__
from .config import DownloaderConfig
from .downloader import TileDownloader
from .grid import (
    DEFAULT_CHUNK_SIZE, DEFAULT_RESOLUTION, VALID_RESOLUTIONS,
    parse_timestamp, validate_chunk_size
)
from .himawari import build_image
from .utils import format_summary, setup_logging


def _parse_quality(ctx, param, value: str) -> int:
    return int(value)


def _parse_time(ctx, param, value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    try:
        return parse_timestamp(value)
    except ValueError as e:
        raise click.BadParameter(str(e))


@click.command()
@click.argument('output', default='output.png', required=False)
@click.option('--quality', '-q', type=click.Choice([str(r) for r in VALID_RESOLUTIONS]),
              default=str(DEFAULT_RESOLUTION), callback=_parse_quality,
              help='Image quality, tiles per axis, default: 1')
@click.option('--size', '-s', type=int, default=DEFAULT_CHUNK_SIZE,
              help='Image chunk size in pixels, default: 550')
@click.option('--time', '-t', 'capture_time', type=str, callback=_parse_time,
              help='Image capture time, e.g. "2021-01-01 00:00:00", default: latest')
@click.option('--workers', type=int, default=None,
              help='Number of concurrent tile downloads (default: 1)')
@click.option('--retries', type=int, default=None,
              help='Maximum attempts per request on timeout (default: unlimited)')
@click.option('--timeout', type=float, default=None,
              help='Per-request timeout in seconds (default: 30)')
@click.option('--base-url', type=str, default=None, help='Override the service URL')
@click.option('-v', '--verbose', count=True,
              help='Increase verbosity (can be used multiple times)')
@click.version_option(version=__version__)
def main(output: str, quality: int, size: int, capture_time: Optional[datetime],
         workers: Optional[int], retries: Optional[int], timeout: Optional[float],
         base_url: Optional[str], verbose: int = 0):
    """
    Download a Himawari full-disk image and save it to OUTPUT.

    \b
    Examples:
        # Latest image, 550x550
        himawari-download

        # 4x4 grid at a given time, 8 parallel downloads
        himawari-download -q 4 -t "2021-01-01 00:00:00" --workers 8 earth.png
    """
    setup_logging(verbose)

    try:
        validate_chunk_size(size)

        config = DownloaderConfig.from_env().with_overrides(
            base_url=base_url, max_workers=workers,
            max_retries=retries, timeout=timeout
        )

        with TileDownloader(config) as downloader:
            if capture_time is None:
                click.echo("Resolving latest capture time...")
                capture_time = downloader.resolve_latest()

            click.echo(format_summary({
                'source': downloader.data_source.get_description(),
                'timestamp': capture_time,
                'resolution': quality,
                'chunk_size': size,
                'workers': config.max_workers,
                'output': output,
            }))

            with tqdm(total=quality ** 2, desc="Downloading tiles", unit="tile") as pbar:
                def progress_callback(completed: int, total: int):
                    pbar.update(completed - pbar.n)

                image = build_image(
                    quality, size, capture_time,
                    downloader=downloader,
                    progress_callback=progress_callback
                )

        click.echo(f"Saving {image.width}x{image.height} image to {output}...")
        image.save(output)
        click.echo(f"Saved {output}")

    except Exception as e:
        click.echo(f"\nError: {e}", err=True)
        if verbose > 0:
            traceback.print_exc()
        sys.exit(1)


if __name__ == '__main__':
    main()
