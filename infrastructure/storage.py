"""
Local disk file storage.

Files land in ``{upload_dir}/{kind}/{unique name}`` and are addressed by the
public URL ``{base_url}/uploads/{kind}/{unique name}``.
"""

import logging
import os
import secrets
from pathlib import Path
from typing import Optional

import aiofiles
import aiofiles.os

from domain.enums import AssetKind
from domain.exceptions import StorageFailureError
from domain.repositories import FileStorage

logger = logging.getLogger(__name__)

SAFE_CHARS = set("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789._-")


def safe_filename(filename: Optional[str]) -> str:
    """Strip directory components and unsafe characters"""
    name = os.path.basename(filename or "")
    name = "".join(ch for ch in name if ch in SAFE_CHARS).lstrip(".-")
    if len(name) > 100:
        stem, ext = os.path.splitext(name)
        name = stem[:100 - len(ext)] + ext
    return name or "upload"


def generate_unique_filename(original_name: Optional[str], prefix: Optional[str] = None) -> str:
    """Unique name that keeps the original extension"""
    stem, ext = os.path.splitext(safe_filename(original_name))
    token = secrets.token_hex(8)
    if prefix:
        return f"{prefix}_{stem}_{token}{ext.lower()}"
    return f"{stem}_{token}{ext.lower()}"


class LocalFileStorage(FileStorage):
    """FileStorage writing to a directory served under /uploads"""

    def __init__(self, upload_dir: str, base_url: str):
        self.upload_dir = Path(upload_dir)
        self.base_url = base_url.rstrip("/")

    def path_for(self, kind: AssetKind, filename: str) -> Path:
        return self.upload_dir / kind.value / filename

    def url_for(self, kind: AssetKind, filename: str) -> str:
        return f"{self.base_url}/uploads/{kind.value}/{filename}"

    def path_from_url(self, url: str) -> Optional[Path]:
        """Map a URL issued by this storage back to its file, None for foreign URLs"""
        marker = "/uploads/"
        if not url or marker not in url:
            return None
        kind_value, _, filename = url.split(marker, 1)[1].partition("/")
        if kind_value not in {kind.value for kind in AssetKind}:
            return None
        filename = os.path.basename(filename)
        if not filename:
            return None
        return self.upload_dir / kind_value / filename

    async def store(self, kind: AssetKind, data: bytes, filename: str) -> str:
        """Write data under a fresh unique name and return its URL"""
        unique_name = generate_unique_filename(filename, prefix=kind.value.lower())
        path = self.path_for(kind, unique_name)
        try:
            await aiofiles.os.makedirs(path.parent, exist_ok=True)
            async with aiofiles.open(path, "wb") as f:
                await f.write(data)
        except OSError as e:
            logger.error("File upload error for %s: %s", path, e, exc_info=True)
            raise StorageFailureError(f"Failed to store file: {e}", path=str(path))

        logger.info("Stored %s file %s (%d bytes)", kind.value, unique_name, len(data))
        return self.url_for(kind, unique_name)

    async def contains(self, kind: AssetKind, url: str) -> bool:
        path = self.path_from_url(url)
        if path is None or path.parent.name != kind.value:
            return False
        if not url.startswith(self.base_url + "/"):
            return False
        return await aiofiles.os.path.isfile(path)

    async def delete(self, url: str) -> bool:
        """Remove the file behind url, raises StorageFailureError if removal fails"""
        path = self.path_from_url(url)
        if path is None:
            logger.warning("Not deleting %s: not a stored upload", url)
            return False
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageFailureError(f"Failed to delete file: {e}", path=str(path))

        logger.info("Deleted file %s", path)
        return True
