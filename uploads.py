# uploads.py — MallSurvey Collect
# Invoice / customer image storage. The rest of the app only ever sees URLs.

from __future__ import annotations

import logging
import os
import uuid
from typing import Optional

from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

import config


log = logging.getLogger(__name__)

ALLOWED_TYPES = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
}


def _size_of(file: FileStorage) -> int:
    stream = file.stream
    pos = stream.tell()
    stream.seek(0, os.SEEK_END)
    size = stream.tell()
    stream.seek(pos)
    return size


def save_image(file: Optional[FileStorage]) -> str:
    """
    Stores an uploaded image under UPLOAD_DIR with a random name and
    returns that name. Raises ValueError for missing, wrong-type or
    oversized files.
    """
    if file is None or not file.filename:
        raise ValueError("No file uploaded")
    mimetype = (file.mimetype or "").lower()
    if mimetype not in ALLOWED_TYPES:
        raise ValueError("Invalid file type. Only JPG, PNG, and WebP are allowed.")
    max_bytes = int(config.MAX_UPLOAD_MB) * 1024 * 1024
    if _size_of(file) > max_bytes:
        raise ValueError(f"File size exceeds {config.MAX_UPLOAD_MB}MB limit.")

    os.makedirs(config.UPLOAD_DIR, exist_ok=True)
    ext = os.path.splitext(secure_filename(file.filename))[1].lower() or ALLOWED_TYPES[mimetype]
    name = f"{uuid.uuid4().hex}{ext}"
    file.save(os.path.join(config.UPLOAD_DIR, name))
    log.info("Stored upload %s (%s)", name, mimetype)
    return name


def public_url(filename: str, host_url: str) -> str:
    base = config.PUBLIC_BASE_URL or host_url.rstrip("/")
    return f"{base}/uploads/{filename}"
