from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple
import io
import logging
import uuid

import requests
from PIL import Image, UnidentifiedImageError

from app.errors import AppError, RequestValidationFailed

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = ("image/jpeg", "image/png")
ALLOWED_EXTENSIONS = (".jpg", ".jpeg", ".png")
MAX_FILE_SIZE = 10 * 1024 * 1024

FETCH_TIMEOUT = 10
FETCH_HEADERS = {"User-Agent": "Mozilla/5.0 (compatible; NanoBananaStudio/1.0)"}

_PIL_FORMATS = {"JPEG": ("jpeg", ".jpg", "image/jpeg"), "PNG": ("png", ".png", "image/png")}


@dataclass(frozen=True)
class StoredImage:
    name: str
    path: Path
    url: str
    format: str
    width: int
    height: int
    size: int


def format_file_size(n: int) -> str:
    size = float(n)
    for unit in ("Bytes", "KB", "MB"):
        if size < 1024:
            return f"{round(size, 2):g} {unit}"
        size /= 1024
    return f"{round(size, 2):g} GB"


def _sniff(data: bytes) -> Optional[Tuple[str, int, int]]:
    """(PIL format, width, height) if Pillow can read the bytes."""
    try:
        with Image.open(io.BytesIO(data)) as im:
            im.verify()
        with Image.open(io.BytesIO(data)) as im:
            return im.format, im.width, im.height
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError):
        return None


def check_image(data: bytes, filename: str, content_type: Optional[str]) -> List[str]:
    """Every reason this upload is unacceptable; empty when it is fine."""
    errors: List[str] = []
    if content_type not in ALLOWED_MIME_TYPES:
        errors.append(f"Invalid file type: {content_type}. Allowed types: {', '.join(ALLOWED_MIME_TYPES)}")
    ext = Path(filename or "").suffix.lower()
    if ext not in ALLOWED_EXTENSIONS:
        errors.append(f"Invalid file extension: {ext or '(none)'}. Allowed: {', '.join(ALLOWED_EXTENSIONS)}")
    if len(data) > MAX_FILE_SIZE:
        errors.append(
            f"File too large: {format_file_size(len(data))} exceeds limit of {format_file_size(MAX_FILE_SIZE)}"
        )
    elif not errors:
        sniffed = _sniff(data)
        if not sniffed or sniffed[0] not in _PIL_FORMATS:
            errors.append("File is not a readable JPEG or PNG image")
    return errors


class ImageStorage:
    """Writes accepted images under ``upload_dir`` and hands out their public URLs."""

    def __init__(self, upload_dir: str, public_base_url: str, url_prefix: str = "/uploads"):
        self.upload_dir = Path(upload_dir)
        self.public_base_url = public_base_url.rstrip("/")
        self.url_prefix = url_prefix
        self.upload_dir.mkdir(parents=True, exist_ok=True)

    def validate(self, files: List[Tuple[str, Optional[str], bytes]]) -> None:
        """Raise RequestValidationFailed listing problems across (filename, content_type, data) triples."""
        errors: List[str] = []
        for i, (filename, content_type, data) in enumerate(files, start=1):
            for problem in check_image(data, filename, content_type):
                errors.append(f"File {i} ({filename}): {problem}")
        if errors:
            raise RequestValidationFailed(errors, message="Invalid files")

    def save(self, data: bytes, filename: str, content_type: Optional[str]) -> StoredImage:
        problems = check_image(data, filename, content_type)
        if problems:
            raise RequestValidationFailed([f"{filename}: {p}" for p in problems], message="Invalid files")
        pil_format, width, height = _sniff(data)
        fmt, ext, _ = _PIL_FORMATS[pil_format]
        name = f"{uuid.uuid4().hex}{ext}"
        dst = self.upload_dir / name
        dst.write_bytes(data)
        logger.info("Stored upload %s (%s, %dx%d, %s)", name, fmt, width, height, format_file_size(len(data)))
        return StoredImage(
            name=name,
            path=dst,
            url=f"{self.public_base_url}{self.url_prefix}/{name}",
            format=fmt,
            width=width,
            height=height,
            size=len(data),
        )

    def save_fetched(self, data: bytes, source_url: str) -> StoredImage:
        """Store bytes downloaded from ``source_url``, trusting the content over the URL."""
        sniffed = _sniff(data)
        if not sniffed or sniffed[0] not in _PIL_FORMATS:
            raise AppError(400, "Invalid image URL", f"Content at {source_url} is not a JPEG or PNG image")
        _, ext, mime = _PIL_FORMATS[sniffed[0]]
        return self.save(data, f"refinement{ext}", mime)


def fetch_remote_image(url: str, session: Optional[requests.Session] = None) -> Tuple[bytes, Optional[str]]:
    """Download ``url``; 4xx answers are the caller's fault, everything else is ours."""
    http = session or requests
    try:
        resp = http.get(url, timeout=FETCH_TIMEOUT, headers=FETCH_HEADERS)
    except requests.exceptions.RequestException as e:
        raise AppError(502, "Image fetch failed", f"Could not fetch image from URL: {e}")
    if 400 <= resp.status_code < 500:
        raise AppError(400, "Invalid image URL", f"Could not fetch image from URL: HTTP {resp.status_code}")
    if resp.status_code >= 500:
        raise AppError(502, "Image fetch failed", f"Image host answered HTTP {resp.status_code}")
    data = resp.content
    if len(data) > MAX_FILE_SIZE:
        raise AppError(400, "Invalid image URL", f"Image exceeds {format_file_size(MAX_FILE_SIZE)} limit")
    return data, resp.headers.get("Content-Type")
