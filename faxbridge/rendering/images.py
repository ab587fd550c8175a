"""Remote image fetching for image blocks.

Layout runs synchronously on a worker thread, so remote images are fetched
beforehand and inlined into their blocks. A block whose image cannot be
fetched is left as it was and the layout engine prints its fallback text.
"""

import asyncio
import hashlib
import time
from collections import OrderedDict
from io import BytesIO
from typing import Callable, List, Optional, Sequence, Tuple
from urllib.parse import urlparse

import httpx
from PIL import Image

from faxbridge.models.content import ContentBlock, ImageBlock
from faxbridge.models.document import Document
from faxbridge.utils.logging import get_logger

LOGGER = get_logger(__name__)


def fit_within(image: Image.Image, box_width: int, box_height: int) -> Image.Image:
    """Scale ``image`` to the largest size that fits the box, preserving aspect ratio."""
    ratio = min(box_width / image.width, box_height / image.height)
    size = (max(1, round(image.width * ratio)), max(1, round(image.height * ratio)))
    if size == image.size:
        return image
    return image.resize(size, Image.LANCZOS)


class ImageFetchError(Exception):
    """Raised when a remote image is rejected or cannot be downloaded."""


class ImageCache:
    """In-memory LRU cache of downloaded images keyed by the SHA-256 of the URL.

    Entries expire after ``ttl_seconds``; expired entries are swept on every
    insert and the least recently used entry is evicted beyond ``max_entries``.
    """

    def __init__(self, ttl_seconds: int, max_entries: int = 256, clock: Callable[[], float] = time.monotonic):
        self._ttl = ttl_seconds
        self._max_entries = max(1, max_entries)
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[float, bytes]]" = OrderedDict()

    @staticmethod
    def key_for(url: str) -> str:
        return hashlib.sha256(url.encode("utf-8")).hexdigest()

    def get(self, url: str) -> Optional[bytes]:
        key = self.key_for(url)
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, data = entry
        if self._clock() - stored_at > self._ttl:
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return data

    def set(self, url: str, data: bytes) -> None:
        now = self._clock()
        expired = [key for key, (stored_at, _) in self._entries.items() if now - stored_at > self._ttl]
        for key in expired:
            del self._entries[key]

        key = self.key_for(url)
        self._entries[key] = (now, data)
        self._entries.move_to_end(key)
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)

    def __len__(self) -> int:
        return len(self._entries)


class ImageResolver:
    """Downloads, validates and normalizes the images referenced by a document.

    Args:
        image_settings: ``ImageSettings`` with timeout, size and host bounds
        cache: Shared cache; a private one is created when omitted
        client_factory: Builds the ``httpx.AsyncClient``; replaced in tests
    """

    def __init__(
        self,
        image_settings,
        cache: Optional[ImageCache] = None,
        client_factory: Callable[..., httpx.AsyncClient] = httpx.AsyncClient,
    ):
        self.timeout = image_settings.download_timeout_seconds
        self.max_bytes = image_settings.max_bytes
        self.allowed_hosts = [host.lower() for host in image_settings.allowed_hosts]
        self.cache = cache or ImageCache(image_settings.cache_ttl_seconds, image_settings.cache_max_entries)
        self._client_factory = client_factory

    async def resolve_document(self, document: Document) -> Document:
        """Return a copy of ``document`` with remote images inlined where possible."""
        if not any(self._needs_fetch(block) for page in document.pages for block in page.content):
            return document

        pages = []
        for page in document.pages:
            content = await self.resolve_blocks(page.content)
            pages.append(page.model_copy(update={"content": content}))
        return document.model_copy(update={"pages": pages})

    async def resolve_blocks(self, blocks: Sequence[ContentBlock]) -> List[ContentBlock]:
        resolved: List[ContentBlock] = []
        for block in blocks:
            if self._needs_fetch(block):
                data = await self.fetch(block.url, block.width, block.height)
                if data is not None:
                    block = block.model_copy(update={"data": data})
            resolved.append(block)
        return resolved

    async def fetch(self, url: str, box_width: int, box_height: int) -> Optional[bytes]:
        """Fetch one image and return it as grayscale PNG bytes fitted to the box.

        Returns:
            The prepared image, or None when the image is unavailable
        """
        try:
            raw = self.cache.get(url)
            if raw is None:
                raw = await self._download(url)
                self.cache.set(url, raw)
            else:
                LOGGER.debug("Image cache hit", extra={"image_url": url})
            return await asyncio.to_thread(_prepare_image, raw, box_width, box_height)
        except ImageFetchError as e:
            LOGGER.warning(f"Image rejected: {e}", extra={"image_url": url})
        except httpx.HTTPError as e:
            LOGGER.warning(f"Image download failed: {e}", extra={"image_url": url})
        except (OSError, ValueError, Image.DecompressionBombError) as e:
            LOGGER.warning(f"Image could not be decoded: {e}", extra={"image_url": url})
        return None

    def _needs_fetch(self, block: ContentBlock) -> bool:
        return isinstance(block, ImageBlock) and block.data is None and bool(block.url)

    def _check_url(self, url: str) -> None:
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https"):
            raise ImageFetchError(f"Unsupported URL scheme: {parsed.scheme or 'none'}")
        if self.allowed_hosts:
            if parsed.scheme != "https":
                raise ImageFetchError("Only https image URLs are allowed")
            if (parsed.hostname or "").lower() not in self.allowed_hosts:
                raise ImageFetchError(f"Host not allowed: {parsed.hostname}")

    async def _check_request(self, request: httpx.Request) -> None:
        # Runs for every hop, so redirects cannot leave the allow-list.
        self._check_url(str(request.url))

    async def _download(self, url: str) -> bytes:
        self._check_url(url)
        async with self._client_factory(
            timeout=self.timeout,
            follow_redirects=True,
            event_hooks={"request": [self._check_request]},
        ) as client:
            async with client.stream("GET", url) as response:
                response.raise_for_status()

                content_type = response.headers.get("content-type", "")
                if not content_type.startswith("image/"):
                    raise ImageFetchError(f"Not an image: {content_type or 'no content type'}")

                declared = response.headers.get("content-length")
                if declared and declared.isdigit() and int(declared) > self.max_bytes:
                    raise ImageFetchError(f"Image too large: {declared} bytes")

                buffer = bytearray()
                async for chunk in response.aiter_bytes():
                    buffer.extend(chunk)
                    if len(buffer) > self.max_bytes:
                        raise ImageFetchError(f"Image exceeds {self.max_bytes} bytes")

        LOGGER.info("Downloaded image", extra={"image_url": url, "size_bytes": len(buffer)})
        return bytes(buffer)


def _prepare_image(raw: bytes, box_width: int, box_height: int) -> bytes:
    with Image.open(BytesIO(raw)) as source:
        source.load()
        picture = source.convert("L")
    if picture.width > box_width or picture.height > box_height:
        picture = fit_within(picture, box_width, box_height)
    output = BytesIO()
    picture.save(output, format="PNG")
    return output.getvalue()
