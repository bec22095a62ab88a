# api/archive/image_utils.py
import io
import logging
import os
import secrets
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from fastapi import HTTPException, UploadFile
from PIL import Image, ImageOps, UnidentifiedImageError
from starlette.concurrency import run_in_threadpool

from .config import settings

logger = logging.getLogger(__name__)

IMAGE_SUBDIR = "martyrs"


class ImageProcessingError(Exception):
    """Decode, directory or write failure. Reported as a single 500 to clients."""


@dataclass
class StoredImage:
    filename: str
    path: Path
    url: str
    width: int
    height: int


# ------------------------------------------
# Checks before any processing
# ------------------------------------------

def check_image_upload(data: bytes, content_type: Optional[str]) -> None:
    """Raise a client error for a non-image or oversized upload."""
    if not (content_type or "").lower().startswith("image/"):
        raise HTTPException(status_code=415, detail="Only image files are allowed")
    max_bytes = int(settings.MAX_UPLOAD_MB) * 1024 * 1024
    if len(data) > max_bytes:
        raise HTTPException(status_code=413, detail=f"Image too large (>{settings.MAX_UPLOAD_MB} MB)")


def _new_filename(prefix: str = "martyr") -> str:
    return f"{prefix}-{int(time.time() * 1000)}-{secrets.token_hex(5)}.jpg"


# ------------------------------------------
# Resize + re-encode
# ------------------------------------------

def _to_rgb(img: Image.Image) -> Image.Image:
    if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
        img = img.convert("RGBA")
        background = Image.new("RGB", img.size, (255, 255, 255))
        background.paste(img, mask=img.split()[-1])
        return background
    if img.mode != "RGB":
        return img.convert("RGB")
    return img


def render_jpeg(data: bytes, max_dimension: int, quality: int) -> tuple:
    """
    Decode ``data``, shrink it so neither side exceeds ``max_dimension``
    (never enlarges), and encode a baseline JPEG.
    Returns (jpeg_bytes, width, height).
    """
    try:
        with Image.open(io.BytesIO(data)) as src:
            src.load()
            img = ImageOps.exif_transpose(src)
            img = _to_rgb(img)
            img.thumbnail((max_dimension, max_dimension), Image.Resampling.LANCZOS)
            out = io.BytesIO()
            img.save(out, format="JPEG", quality=quality, optimize=True, progressive=False)
            return out.getvalue(), img.width, img.height
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as e:
        raise ImageProcessingError(f"cannot decode image: {e}") from e


def store_image(
    data: bytes,
    upload_dir: Optional[str] = None,
    prefix: str = "martyr",
    subdir: str = IMAGE_SUBDIR,
) -> StoredImage:
    """
    Process ``data`` and write it under ``<upload_dir>/<subdir>/``.

    The file is first written under a temporary name then renamed, so a
    failure never leaves a partial file behind.
    """
    base = Path(upload_dir or settings.UPLOAD_DIR) / subdir
    jpeg, width, height = render_jpeg(data, settings.IMAGE_MAX_DIMENSION, settings.IMAGE_QUALITY)

    try:
        base.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ImageProcessingError(f"cannot create {base}: {e}") from e

    filename = _new_filename(prefix)
    dest = base / filename
    tmp = base / (filename + ".part")
    try:
        tmp.write_bytes(jpeg)
        os.replace(tmp, dest)
    except OSError as e:
        tmp.unlink(missing_ok=True)
        raise ImageProcessingError(f"cannot write {dest}: {e}") from e

    url = f"{settings.UPLOAD_URL_PREFIX.rstrip('/')}/{subdir}/{filename}"
    logger.info("stored image %s (%dx%d, %d bytes)", url, width, height, len(jpeg))
    return StoredImage(filename=filename, path=dest, url=url, width=width, height=height)


async def save_image_validated(file: UploadFile, prefix: str = "martyr", subdir: str = IMAGE_SUBDIR) -> StoredImage:
    """
    Full pipeline for an uploaded photo: type/size checks, then decode,
    resize and write in a worker thread.
    """
    # one byte past the limit is enough to reject
    data = await file.read(int(settings.MAX_UPLOAD_MB) * 1024 * 1024 + 1)
    check_image_upload(data, file.content_type)
    return await run_in_threadpool(store_image, data, None, prefix, subdir)


# ------------------------------------------
# Cleanup
# ------------------------------------------

def path_for_url(url: Optional[str]) -> Optional[Path]:
    """Map a stored relative URL back to its file, None if it is not one of ours."""
    if not url:
        return None
    prefix = settings.UPLOAD_URL_PREFIX.rstrip("/") + "/"
    if not url.startswith(prefix):
        return None
    rel = url[len(prefix):]
    root = Path(settings.UPLOAD_DIR).resolve()
    candidate = (root / rel).resolve()
    if root not in candidate.parents:
        return None
    return candidate


def delete_image(url: Optional[str]) -> None:
    """Best-effort removal of a stored image."""
    p = path_for_url(url)
    if p is None:
        return
    try:
        p.unlink(missing_ok=True)
    except OSError as e:
        logger.warning("could not delete %s: %s", p, e)
