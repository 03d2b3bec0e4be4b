import logging
import os
import shutil
import time
from typing import BinaryIO, NamedTuple, Optional

from config import AppConfig
from core.errors import ValidationError

logger = logging.getLogger(__name__)

ALLOWED_TYPE_PREFIXES = ("image", "application/pdf")


class StoredFile(NamedTuple):
    filename: str
    url: str
    content_type: str


def validate_upload(content_type: Optional[str], size: int, max_size: int = AppConfig.MAX_FILE_UPLOAD) -> None:
    """Only images and PDFs up to `max_size` bytes are accepted."""
    if not content_type or not content_type.startswith(ALLOWED_TYPE_PREFIXES):
        raise ValidationError("Please upload an image or PDF file", field="file")
    if size <= 0:
        raise ValidationError("Please upload a file", field="file")
    if size > max_size:
        raise ValidationError(f"Please upload a file less than {max_size / 1000000:g}MB", field="file")


def build_filename(prefix: str, owner_id: str, original_name: Optional[str], now: Optional[float] = None) -> str:
    ext = os.path.splitext(original_name or "")[1].lower()
    stamp = int((now if now is not None else time.time()) * 1000)
    return f"{prefix}_{owner_id}_{stamp}{ext}"


def _size_of(stream: BinaryIO) -> int:
    position = stream.tell()
    stream.seek(0, os.SEEK_END)
    size = stream.tell()
    stream.seek(position)
    return size


def store_upload(
    stream: BinaryIO,
    original_name: Optional[str],
    content_type: Optional[str],
    prefix: str,
    owner_id: str,
    upload_dir: str = AppConfig.UPLOAD_DIR,
    url_prefix: str = AppConfig.UPLOAD_URL_PREFIX,
    max_size: int = AppConfig.MAX_FILE_UPLOAD,
) -> StoredFile:
    """Validate and write an uploaded file; returns where it can be fetched from."""
    validate_upload(content_type, _size_of(stream), max_size)
    filename = build_filename(prefix, owner_id, original_name)
    os.makedirs(upload_dir, exist_ok=True)
    stream.seek(0)
    with open(os.path.join(upload_dir, filename), "wb") as out:
        shutil.copyfileobj(stream, out)
    logger.info("Stored upload %s for %s", filename, owner_id)
    return StoredFile(filename, f"{url_prefix.rstrip('/')}/{filename}", content_type)


def remove_upload(url: str, upload_dir: str = AppConfig.UPLOAD_DIR) -> None:
    path = os.path.join(upload_dir, os.path.basename(url))
    if os.path.exists(path):
        os.remove(path)
