import io
from pathlib import Path

import pytest
from fastapi import HTTPException
from PIL import Image

from archive.config import settings
from archive.image_utils import (
    ImageProcessingError,
    check_image_upload,
    delete_image,
    path_for_url,
    render_jpeg,
    store_image,
)
from conftest import image_bytes


def test_large_image_is_shrunk_to_800(tmp_path):
    stored = store_image(image_bytes(size=(2000, 2000)), upload_dir=str(tmp_path))

    assert stored.url.startswith("/uploads/martyrs/martyr-")
    assert stored.url.endswith(".jpg")
    with Image.open(stored.path) as img:
        assert max(img.size) == 800
        assert img.format == "JPEG"
    # no temporary file left behind
    assert list(Path(tmp_path, "martyrs").glob("*.part")) == []


def test_small_image_is_not_enlarged():
    jpeg, width, height = render_jpeg(image_bytes(size=(300, 120)), 800, 80)
    assert (width, height) == (300, 120)
    assert jpeg[:2] == b"\xff\xd8"


def test_aspect_ratio_is_kept():
    _, width, height = render_jpeg(image_bytes(size=(1600, 400)), 800, 80)
    assert (width, height) == (800, 200)


def test_transparent_png_is_flattened():
    buf = io.BytesIO()
    Image.new("RGBA", (50, 50), (0, 0, 0, 0)).save(buf, format="PNG")
    jpeg, _, _ = render_jpeg(buf.getvalue(), 800, 80)
    with Image.open(io.BytesIO(jpeg)) as img:
        assert img.mode == "RGB"


def test_non_image_type_is_rejected():
    with pytest.raises(HTTPException) as exc:
        check_image_upload(b"%PDF-1.4", "application/pdf")
    assert exc.value.status_code == 415
    assert exc.value.detail == "Only image files are allowed"


def test_oversized_upload_is_rejected():
    too_big = b"\0" * (settings.MAX_UPLOAD_MB * 1024 * 1024 + 1)
    with pytest.raises(HTTPException) as exc:
        check_image_upload(too_big, "image/jpeg")
    assert exc.value.status_code == 413


def test_undecodable_bytes_raise_processing_error(tmp_path):
    with pytest.raises(ImageProcessingError):
        store_image(b"definitely not a picture", upload_dir=str(tmp_path))
    assert not any(Path(tmp_path).rglob("*.jpg"))


def test_unwritable_directory_raises_processing_error(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("x")
    with pytest.raises(ImageProcessingError):
        # a regular file where the directory should be
        store_image(image_bytes(), upload_dir=str(blocker))


def test_names_do_not_collide():
    a = store_image(image_bytes())
    b = store_image(image_bytes())
    assert a.filename != b.filename


def test_delete_image_removes_only_our_files():
    stored = store_image(image_bytes())
    assert stored.path.exists()

    delete_image(stored.url)
    assert not stored.path.exists()

    # unknown prefixes and traversal attempts are ignored
    assert path_for_url("/elsewhere/x.jpg") is None
    assert path_for_url("/uploads/../../etc/passwd") is None
    delete_image(None)
