# meetme/infrastructure/imaging/loader.py
import asyncio
import base64
import binascii
import io
import logging
import os
from concurrent.futures import Executor
from typing import List, Optional, Sequence, Union

import aiofiles
import aiohttp
from PIL import Image, ImageOps, UnidentifiedImageError

from meetme.config.settings import settings
from meetme.domain.errors import ImageLoadError, ImageTooLargeError

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    formatter = logging.Formatter('%(asctime)s [%(levelname)s] %(message)s', '%Y-%m-%d %H:%M:%S')
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    logger.propagate = False


CHUNK_SIZE = 64 * 1024


def _check_size(data: bytes, max_bytes: Optional[int]) -> bytes:
    if max_bytes is not None and len(data) > max_bytes:
        raise ImageTooLargeError(f"Image is {len(data)} bytes, limit is {max_bytes}")
    return data


def _decode_base64(encoded: str, max_bytes: Optional[int], validate: bool = False) -> bytes:
    encoded = encoded.strip()
    if max_bytes is not None:
        # decoded size is known from the encoded length, before decoding anything
        estimate = len(encoded) * 3 // 4 - (len(encoded) - len(encoded.rstrip("=")))
        if estimate > max_bytes:
            raise ImageTooLargeError(f"Image is about {estimate} bytes, limit is {max_bytes}")
    if validate:
        stripped = encoded.rstrip("=")
        padded = stripped + "=" * (-len(stripped) % 4)
    else:
        padded = encoded + "==="
    return _check_size(base64.b64decode(padded, validate=validate), max_bytes)


async def _read_limited(response: aiohttp.ClientResponse, max_bytes: Optional[int]) -> bytes:
    if max_bytes is None:
        return await response.read()
    if (response.content_length or 0) > max_bytes:
        raise ImageTooLargeError(f"Image is {response.content_length} bytes, limit is {max_bytes}")
    chunks = []
    total = 0
    async for chunk in response.content.iter_chunked(CHUNK_SIZE):
        total += len(chunk)
        if total > max_bytes:
            raise ImageTooLargeError(f"Image exceeds {max_bytes} bytes")
        chunks.append(chunk)
    return b"".join(chunks)


async def load_image_bytes(
    src: str,
    session: aiohttp.ClientSession,
    max_bytes: Optional[int] = None,
    inline_only: bool = False,
) -> bytes:
    """Fetch raw image bytes from an URL, a local path, a data URL or bare base64.

    With ``inline_only`` the source must carry its own bytes (data URL or
    base64): URLs are rejected and the file system is never consulted.
    """
    try:
        if src.startswith(("http://", "https://")):
            if inline_only:
                raise ImageLoadError("Remote image sources are not accepted here")
            timeout = aiohttp.ClientTimeout(total=settings.REQUEST_TIMEOUT)
            async with session.get(src, timeout=timeout) as response:
                response.raise_for_status()
                return await _read_limited(response, max_bytes)
        if not inline_only and os.path.isfile(src):
            async with aiofiles.open(src, "rb") as f:
                return _check_size(await f.read(), max_bytes)
        if src.startswith("data:image"):
            _, encoded = src.split(",", 1)
            return _decode_base64(encoded, max_bytes)
        # untrusted text that is not strict base64 (a path, say) is refused outright
        return _decode_base64(src, max_bytes, validate=inline_only)
    except ImageLoadError:
        raise
    except (aiohttp.ClientError, asyncio.TimeoutError, OSError, ValueError, binascii.Error) as e:
        logger.warning(f"Failed to load image from source '{src[:70]}...': {type(e).__name__}")
        raise ImageLoadError(f"Failed to load image: {src[:70]}") from e


def decode_image(data: bytes) -> Image.Image:
    """Decode to RGBA with EXIF orientation applied, fully loaded in memory."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            img = ImageOps.exif_transpose(img)
            return img.convert("RGBA")
    except (UnidentifiedImageError, OSError, ValueError) as e:
        logger.warning(f"Failed to decode image ({len(data)} bytes): {type(e).__name__}")
        raise ImageLoadError("Failed to decode image") from e


async def load_image(
    src: str,
    session: aiohttp.ClientSession,
    executor: Optional[Executor] = None,
    max_bytes: Optional[int] = None,
    inline_only: bool = False,
) -> Image.Image:
    """Load and decode one image. Raises ImageLoadError on any failure."""
    data = await load_image_bytes(src, session, max_bytes=max_bytes, inline_only=inline_only)
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(executor, decode_image, data)


async def load_many(
    sources: List[Optional[str]],
    executor: Optional[Executor] = None,
    max_bytes: Union[int, Sequence[Optional[int]], None] = None,
    inline_only: Union[bool, Sequence[bool]] = False,
) -> List[object]:
    """Load several images in parallel.

    ``max_bytes`` and ``inline_only`` are either one value for every source
    or a per-source list. Each slot holds the decoded image, None for a None
    source, or the ImageLoadError raised for it, so one failure does not
    hide the others.
    """
    limits = list(max_bytes) if isinstance(max_bytes, (list, tuple)) else [max_bytes] * len(sources)
    policies = list(inline_only) if isinstance(inline_only, (list, tuple)) else [inline_only] * len(sources)

    async with aiohttp.ClientSession() as session:
        async def one(src, limit, inline):
            if src is None:
                return None
            return await load_image(src, session, executor=executor, max_bytes=limit, inline_only=inline)

        return await asyncio.gather(
            *(one(s, m, p) for s, m, p in zip(sources, limits, policies)),
            return_exceptions=True,
        )
