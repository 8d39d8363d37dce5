"""Image pipeline: fetch, normalize and store the images of a record.

Two dedup layers, checked in order:
    1. a ``downloads`` row with the image id (authoritative, no fetch at all)
    2. an already stored file under the target key (read back instead of
       fetched; covers runs that stopped before their transaction committed)

Stored files are trusted as complete; there is no checksum verification.
"""

import io
import logging
import mimetypes
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any
from urllib.parse import unquote, urlparse

import httpx
from PIL import ExifTags, Image, ImageOps

from playscrape.actions import ExtractAction
from playscrape.exceptions import ImageDownloadError
from playscrape.models.download import Download
from playscrape.services.dom_query import DomQuery
from playscrape.services.scrape_tracker import ScrapeSession
from playscrape.utils import hash_value, maybe_await, wait

logger = logging.getLogger(__name__)

# Pillow writer names for the configured output formats
PIL_FORMATS = {
    "jpg": "JPEG",
    "jpeg": "JPEG",
    "png": "PNG",
    "webp": "WEBP",
    "gif": "GIF",
    "tiff": "TIFF",
}


@dataclass
class DownloadMetadata:
    id: str
    record_id: str
    width: int
    height: int
    file_size: int | None
    file_name: str
    orig_format: str | None
    orig_url: str
    orig_cookies: str | None


def get_normal_size(width: int, height: int, orientation: int | None) -> tuple[int, int]:
    """Size as displayed; EXIF orientations 5-8 are rotated by 90 degrees."""
    if (orientation or 0) >= 5:
        return height, width
    return width, height


def _local_path(url: str) -> str:
    if url.startswith("file://"):
        return unquote(urlparse(url).path)
    return url


def get_image_id_and_file_name(url: str, format: str = "jpg") -> tuple[str, str, bool]:
    """Return ``(id, file_name, is_local_file)`` for an image url.

    Remote images are keyed by the hash of the url, local files by the hash
    of their basename.
    """
    is_local_file = not url.startswith("http")

    if is_local_file:
        if not url.startswith("file://") and not url.startswith("/"):
            raise ValueError(f"Local file must be an absolute path: {url}")
        orig_file_name = os.path.basename(_local_path(url))
        image_id = hash_value(orig_file_name)
    else:
        image_id = hash_value(url)
        orig_file_name = os.path.basename(unquote(urlparse(url).path))

    # No extension means we default to outputting as a JPG
    if "." not in orig_file_name:
        orig_file_name = f"{orig_file_name or image_id}.jpg"

    file_name = orig_file_name if format == "original" else f"{image_id}.{format}"
    return image_id, file_name, is_local_file


def read_image_metadata(data: bytes) -> dict[str, Any]:
    """Decode format, normalized size and byte size of an image."""
    with Image.open(io.BytesIO(data)) as image:
        orientation = image.getexif().get(ExifTags.Base.Orientation, 0)
        width, height = get_normal_size(image.width, image.height, orientation)
        orig_format = image.format.lower() if image.format else None

    return {
        "width": width,
        "height": height,
        "file_size": len(data),
        "orig_format": orig_format,
    }


def convert_image(data: bytes, format: str) -> bytes:
    """Re-encode an image in the output format, applying its EXIF rotation."""
    if format == "original":
        return data

    pil_format = PIL_FORMATS.get(format.lower(), format.upper())
    with Image.open(io.BytesIO(data)) as image:
        output = ImageOps.exif_transpose(image)
        if pil_format == "JPEG" and output.mode not in ("RGB", "L"):
            output = output.convert("RGB")
        buffer = io.BytesIO()
        output.save(buffer, format=pil_format)
    return buffer.getvalue()


async def _fetch_remote(url: str, cookies: str | None, session: ScrapeSession) -> bytes:
    headers = {"Cookie": cookies} if cookies else {}

    if session.http_client is not None:
        response = await session.http_client.get(url, headers=headers)
    else:
        timeout = session.options.timeout / 1000
        async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
            response = await client.get(url, headers=headers)

    if not response.is_success:
        raise ImageDownloadError(f"Failed to download image. Status: {response.status_code}")

    content_type = response.headers.get("content-type", "")
    if not content_type.startswith("image/"):
        raise ImageDownloadError(f"Failed to download image. Content-Type: {content_type}")

    return response.content


async def download_image(
    record_id: str,
    url: str,
    cookies: str | None,
    session: ScrapeSession,
) -> DownloadMetadata:
    """Fetch (or reuse) one image, store it, and return its metadata."""
    options = session.options
    storage = session.image_storage()
    image_id, file_name, is_local_file = get_image_id_and_file_name(url, options.format)

    data: bytes | None = None
    has_been_downloaded = False

    if not options.overwrite:
        data = storage.get(file_name)
        has_been_downloaded = data is not None
        if has_been_downloaded:
            logger.debug(f"Image already stored as {file_name}")

    if data is None:
        if is_local_file:
            path = Path(_local_path(url))
            if not path.exists():
                raise ImageDownloadError(f"File does not exist: {path}")
            data = path.read_bytes()
        else:
            data = await _fetch_remote(url, cookies, session)

    metadata = read_image_metadata(data)

    if not options.dry_run and not has_been_downloaded:
        output = convert_image(data, options.format)
        content_type = mimetypes.guess_type(file_name)[0] or "image/jpeg"
        try:
            storage.put(file_name, output, content_type)
        except Exception as e:
            if options.download_to != "s3":
                raise
            # The metadata is still recorded; the object can be re-uploaded later
            logger.error(f"Failed to upload image to S3: {file_name}: {e}")

    return DownloadMetadata(
        id=image_id,
        record_id=record_id,
        orig_url=url,
        orig_cookies=cookies,
        file_name=file_name,
        **metadata,
    )


async def download_images(
    action: ExtractAction,
    doc: DomQuery,
    record: dict[str, Any],
    cookies: str | None,
    session: ScrapeSession,
) -> list[Download]:
    """Resolve every image of a record to a ``Download`` row.

    Nothing is written to the database here; the caller adds the returned
    rows inside the record's transaction. Existing rows are returned as is.
    """
    options = session.options

    if action.download_images is None:
        return []

    urls = await maybe_await(action.download_images(doc, record))

    if not urls:
        logger.warning("No images to download.")
        return []

    results: dict[str, Download] = {}

    for url in urls:
        image_id, _, _ = get_image_id_and_file_name(url)

        if image_id in results:
            continue

        existing = session.db.get(Download, image_id)
        if existing is not None:
            logger.info(f"Image already downloaded: {url}")
            results[image_id] = existing
            continue

        if options.dry_run:
            logger.info(f"DRY RUN: Image would be downloaded: {url}")
            continue

        logger.info(f"Downloading image from {url}")
        await wait(options.delay)

        metadata = await download_image(record["id"], url, cookies, session)
        results[image_id] = Download(**asdict(metadata))
        logger.info(f"Image downloaded: {url}")

    return list(results.values())
