"""
Bundle the selected artifacts and listing into one ZIP archive.

Layout:
  metadata.json  - selections, listing, counts, timestamp
  designs/       - design-1.png, design-2.png, ...
  mockups/       - mockup-1.png, mockup-2.png, ...
"""

import asyncio
import base64
import binascii
import io
import json
import logging
import zipfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional, Sequence
from urllib.parse import unquote_to_bytes

import httpx
from PIL import Image, UnidentifiedImageError

from .errors import FetchFailed
from .listing import Listing
from .selection import Selections

logger = logging.getLogger(__name__)

METADATA_NAME = "metadata.json"

_EXTENSIONS = {
    "PNG": "png",
    "JPEG": "jpg",
    "WEBP": "webp",
    "GIF": "gif",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ArtifactFetcher:
    """
    Resolve artifact URLs to bytes. `data:` URIs are decoded locally,
    `http(s)` URLs are downloaded with httpx.
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None, timeout: float = 60.0) -> None:
        self.client = client
        self.timeout = timeout

    async def fetch_all(self, urls: Sequence[str]) -> List[bytes]:
        """Fetch every URL; raises the first FetchFailed if any of them fails."""
        if not urls:
            return []
        if self.client is not None:
            return await self._gather(self.client, urls)
        async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
            return await self._gather(client, urls)

    async def fetch(self, url: str, client: Optional[httpx.AsyncClient] = None) -> bytes:
        if url.startswith("data:"):
            return _decode_data_uri(url)
        if not url.startswith(("http://", "https://")):
            raise FetchFailed(url, "unsupported URL scheme")

        http = client or self.client
        if http is None:
            async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as owned:
                return await self._download(owned, url)
        return await self._download(http, url)

    async def _gather(self, client: httpx.AsyncClient, urls: Sequence[str]) -> List[bytes]:
        results = await asyncio.gather(
            *(self.fetch(url, client) for url in urls),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return list(results)

    @staticmethod
    async def _download(client: httpx.AsyncClient, url: str) -> bytes:
        try:
            response = await client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise FetchFailed(url, str(exc) or exc.__class__.__name__) from exc
        return response.content


class ExportPackager:
    """
    Builds the export archive. Nothing is written unless every artifact
    could be fetched.
    """

    def __init__(
        self,
        fetcher: Optional[ArtifactFetcher] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.fetcher = fetcher or ArtifactFetcher()
        self.clock = clock

    async def build_export(
        self,
        selections: Selections,
        selected_designs: Sequence[str],
        selected_mockups: Sequence[str],
        listing: Optional[Listing],
    ) -> bytes:
        blobs = await self.fetcher.fetch_all([*selected_designs, *selected_mockups])
        design_blobs = blobs[: len(selected_designs)]
        mockup_blobs = blobs[len(selected_designs):]

        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zf:
            design_paths = _write_group(zf, "designs", "design", design_blobs)
            mockup_paths = _write_group(zf, "mockups", "mockup", mockup_blobs)

            metadata = {
                "selections": selections.to_dict(),
                "productCategory": selections.product_category.value,
                "listing": listing.to_dict() if listing is not None else None,
                "designCount": len(design_paths),
                "mockupCount": len(mockup_paths),
                "designs": design_paths,
                "mockups": mockup_paths,
                "timestamp": self.clock().isoformat(),
            }
            zf.writestr(METADATA_NAME, json.dumps(metadata, indent=2, ensure_ascii=False))

        archive = buffer.getvalue()
        logger.info(
            f"Export archive built: {len(design_paths)} design(s), {len(mockup_paths)} mockup(s), "
            f"{len(archive) // 1024} KB"
        )
        return archive


def write_export(
    archive: bytes,
    output_dir: Path,
    clock: Callable[[], datetime] = _utcnow,
) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / f"design-listing-{clock().strftime('%Y%m%d-%H%M%S')}.zip"
    path.write_bytes(archive)
    return path


def sniff_extension(data: bytes) -> str:
    """File extension for image bytes, or `bin` when Pillow does not recognise them."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            return _EXTENSIONS.get(img.format or "", "bin")
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError):
        return "bin"


def _write_group(zf: zipfile.ZipFile, folder: str, stem: str, blobs: Sequence[bytes]) -> List[str]:
    paths = []
    for number, data in enumerate(blobs, start=1):
        path = f"{folder}/{stem}-{number}.{sniff_extension(data)}"
        zf.writestr(path, data)
        paths.append(path)
    return paths


def _decode_data_uri(url: str) -> bytes:
    header, sep, payload = url.partition(",")
    if not sep:
        raise FetchFailed(url, "malformed data URI")
    if header.endswith(";base64"):
        try:
            return base64.b64decode(payload, validate=True)
        except binascii.Error as exc:
            raise FetchFailed(url, f"invalid base64 payload: {exc}") from exc
    return unquote_to_bytes(payload)
