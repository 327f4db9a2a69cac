"""
Local-disk storage for uploaded media files.

Files are written under a configured uploads directory and served back at
/uploads/<filename>. Filenames are generated from the original name and the
current time by a pure function so they can be tested in isolation.
"""

import logging
import time
from pathlib import Path, PurePosixPath
from typing import Iterable, List, Optional
from urllib.parse import urlparse

from fastapi import UploadFile
from slugify import slugify

from api.errors import BadRequestError, ServerError
from config import UPLOAD_CHUNK_SIZE, UPLOAD_FILENAME_MAX_BASE_LENGTH

logger = logging.getLogger(__name__)


def generate_upload_filename(original_name: str, now_ms: Optional[int] = None) -> str:
    """
    Build a storage filename: "<epoch millis>_<sanitized base><lower-case ext>".

    The base is reduced to ASCII letters, digits, "-" and "_" (whitespace and
    other separators become "_") and cut to 50 characters. Any directory part
    of the original name is discarded.
    """
    if now_ms is None:
        now_ms = int(time.time() * 1000)

    name = PurePosixPath((original_name or "").replace("\\", "/")).name
    path = PurePosixPath(name)
    ext = path.suffix.lower() if path.stem else ""
    base = path.stem if ext else name

    safe_base = slugify(
        base,
        separator="_",
        lowercase=False,
        max_length=UPLOAD_FILENAME_MAX_BASE_LENGTH,
    )
    if not safe_base:
        safe_base = "file"
    # Extension is attacker-controlled too
    safe_ext = "." + slugify(ext[1:], separator="", lowercase=True) if ext else ""
    if safe_ext == ".":
        safe_ext = ""

    return f"{now_ms}_{safe_base}{safe_ext}"


def format_size_limit(max_size: int) -> str:
    mb = max_size / (1024 * 1024)
    return f"{mb:.0f} MB"


async def save_upload_with_size_limit(file: UploadFile, upload_path: Path, max_size: int) -> int:
    """
    Stream upload to disk with size validation.
    Returns the total bytes written.
    Raises BadRequestError if file exceeds max_size.
    """
    total_size = 0
    try:
        with open(upload_path, "wb") as f:
            while True:
                chunk = await file.read(UPLOAD_CHUNK_SIZE)
                if not chunk:
                    break
                total_size += len(chunk)
                if total_size > max_size:
                    f.close()
                    upload_path.unlink(missing_ok=True)
                    raise BadRequestError(f"File too large. Maximum upload size is {format_size_limit(max_size)}")
                f.write(chunk)
    except BadRequestError:
        raise
    except OSError as e:
        upload_path.unlink(missing_ok=True)
        logger.warning(f"Storage error during upload to {upload_path}: {e}")
        raise ServerError("Upload storage temporarily unavailable. Please try again later.") from e

    return total_size


class UploadStorage:
    """File storage rooted at an explicit uploads directory."""

    def __init__(self, uploads_dir: Path, url_path: str = "/uploads"):
        self.uploads_dir = Path(uploads_dir)
        self.url_path = url_path.rstrip("/")

    async def save(
        self,
        file: UploadFile,
        allowed_mime_types: Iterable[str],
        max_size: int,
    ) -> dict:
        """
        Validate and store an uploaded file.

        Returns a dict with the stored filename, relative URL path, size and
        MIME type. Raises BadRequestError for a missing file, an unsupported
        MIME type, or an oversized upload.
        """
        if file is None or not file.filename:
            raise BadRequestError("No file provided")

        mimetype = (file.content_type or "").lower()
        if mimetype not in allowed_mime_types:
            raise BadRequestError("Unsupported file type")

        self.uploads_dir.mkdir(parents=True, exist_ok=True)
        filename = generate_upload_filename(file.filename)
        size = await save_upload_with_size_limit(file, self.uploads_dir / filename, max_size)

        logger.info(f"Stored upload {filename} ({size} bytes, {mimetype})")
        return {
            "filename": filename,
            "path": f"{self.url_path}/{filename}",
            "size": size,
            "mimetype": mimetype,
        }

    def local_path_for_url(self, url: Optional[str]) -> Optional[Path]:
        """
        Map a stored file URL (absolute or relative) back to a path in the uploads directory.

        Only the basename is used, so a URL can never point outside uploads_dir.
        """
        if not url:
            return None
        try:
            name = PurePosixPath(urlparse(url).path).name
        except ValueError:
            return None
        if not name or name in (".", ".."):
            return None
        return self.uploads_dir / name

    def remove_files(self, urls: Iterable[Optional[str]], keep: Iterable[str] = ()) -> List[Path]:
        """
        Delete the local files behind the given URLs, skipping filenames in keep.

        Best-effort: failures are logged and skipped. Returns the paths that
        were actually removed.
        """
        keep = set(keep)
        removed = []
        for url in urls:
            path = self.local_path_for_url(url)
            if path is None or path.name in keep:
                continue
            try:
                path.unlink()
                removed.append(path)
            except FileNotFoundError:
                logger.debug(f"Upload file already gone: {path}")
            except OSError as e:
                logger.warning(f"Failed to remove upload file {path}: {e}")
        return removed
