"""
Local disk storage for clean originals and watermarked previews.

Two parallel directories under one upload root. Records store paths relative
to that root (e.g. ``clean/3-1a2b3c4d-clean.jpg``).
"""
import asyncio
import logging
from pathlib import Path
from typing import Optional

from storefront.config import get_settings

logger = logging.getLogger("storefront.storage")


class LocalFileStorage:
    """
    File operations for photo renditions.
    Blocking filesystem calls run in a worker thread.
    """

    def __init__(self, root: Path, clean_dir_name: str = "clean", preview_dir_name: str = "watermarked"):
        self.root = Path(root)
        self.clean_dir_name = clean_dir_name
        self.preview_dir_name = preview_dir_name

    def ensure_directories(self) -> None:
        (self.root / self.clean_dir_name).mkdir(parents=True, exist_ok=True)
        (self.root / self.preview_dir_name).mkdir(parents=True, exist_ok=True)

    def clean_relpath(self, filename: str) -> str:
        return f"{self.clean_dir_name}/{filename}"

    def preview_relpath(self, filename: str) -> str:
        return f"{self.preview_dir_name}/{filename}"

    def resolve(self, relpath: str) -> Path:
        """
        Absolute path for a stored relative path.

        Raises:
            ValueError: if the path escapes the upload root
        """
        root = self.root.resolve()
        path = (root / relpath).resolve()
        if root != path and root not in path.parents:
            raise ValueError(f"Path outside upload root: {relpath}")
        return path

    async def write(self, relpath: str, content: bytes) -> Path:
        path = self.resolve(relpath)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)

        await asyncio.to_thread(_write)
        return path

    async def read(self, relpath: str) -> bytes:
        return await asyncio.to_thread(self.resolve(relpath).read_bytes)

    async def exists(self, relpath: str) -> bool:
        return await asyncio.to_thread(self.resolve(relpath).is_file)

    async def delete(self, relpath: Optional[str]) -> bool:
        """
        Delete a stored file.

        Returns:
            True if a file was removed, False if it was already absent
        """
        if not relpath:
            return False
        path = self.resolve(relpath)

        def _delete() -> bool:
            try:
                path.unlink()
                return True
            except FileNotFoundError:
                return False

        removed = await asyncio.to_thread(_delete)
        if not removed:
            logger.info("File already absent", extra={"event": "storage", "path": relpath})
        return removed


_storage_service: Optional[LocalFileStorage] = None


def get_storage_service() -> LocalFileStorage:
    """Get or create the storage singleton from settings."""
    global _storage_service
    if _storage_service is None:
        settings = get_settings()
        _storage_service = LocalFileStorage(
            settings.upload_root,
            clean_dir_name=settings.clean_dir_name,
            preview_dir_name=settings.preview_dir_name,
        )
    return _storage_service
