"""
Release asset fetcher.

Streams a single asset from the GitHub API into a destination file. There is
no temporary file and no retry: the destination is truncated on open, and a
partial file left by a failed transfer is overwritten on the next attempt.
"""

import asyncio
import os
import time
from pathlib import Path
from typing import TYPE_CHECKING

import aiofiles  # type: ignore[import-untyped]
import aiohttp

from gitgrope.constants import (
    BYTES_PER_MEGABYTE,
    DEFAULT_CHUNK_SIZE,
    FILE_SIZE_MB_LOGGING_THRESHOLD,
)
from gitgrope.exceptions import APIError, FetchError
from gitgrope.log_utils import logger

from .models import Asset

if TYPE_CHECKING:
    from .config import Repository


def _is_safe_asset_name(name: str) -> bool:
    if not name or name in {".", ".."} or "\x00" in name or os.path.isabs(name):
        return False
    return not any(sep and sep in name for sep in (os.sep, os.altsep, "/"))


async def fetch_asset(
    repository: "Repository",
    asset: Asset,
    destination: Path,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> int:
    """
    Download one release asset to `destination`.

    Parameters:
        repository (Repository): Repository owning the asset; its client performs the request.
        asset (Asset): The asset to download.
        destination (Path): File to create (or truncate) and fill with the asset bytes.
        chunk_size (int): Number of bytes to read per chunk.

    Returns:
        int: Number of bytes written.

    Raises:
        FetchError: If the request fails, the destination cannot be written, or
            the transfer is interrupted. Carries the repository and asset identity.
    """
    context = {
        "repository": repository.name,
        "asset": asset.name,
        "path": str(destination),
    }
    message = f"{repository.name}.{asset.name}: asset groping failed"

    if not _is_safe_asset_name(asset.name):
        raise FetchError(message, details="unsafe asset name", **context)
    if repository.client is None:
        raise FetchError(message, details="repository has no API client", **context)

    start_time = time.time()
    written = 0
    try:
        async with repository.client.open_asset(
            repository.owner, repository.repo, asset.id
        ) as response:
            async with aiofiles.open(destination, "wb") as f:
                async for chunk in response.content.iter_chunked(chunk_size):
                    await f.write(chunk)
                    written += len(chunk)
    except APIError as e:
        raise FetchError(message, details=str(e), **context) from e
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        raise FetchError(
            message, details=f"transfer interrupted: {e!r}", **context
        ) from e
    except OSError as e:
        raise FetchError(message, details=f"filesystem error: {e}", **context) from e

    elapsed = time.time() - start_time
    size_mb = written / BYTES_PER_MEGABYTE
    logger.debug(f"Downloaded {asset.name} in {elapsed:.2f}s ({size_mb:.2f} MB)")
    if size_mb >= FILE_SIZE_MB_LOGGING_THRESHOLD:
        logger.info(f"Downloaded: {destination.name} ({size_mb:.1f} MB)")
    else:
        logger.info(f"Downloaded: {destination.name} ({written} bytes)")
    return written
