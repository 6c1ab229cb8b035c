import asyncio
import logging
import os
import uuid
from pathlib import Path

logger = logging.getLogger("peak1031.storage")

MAX_SUFFIX_LENGTH = 16


def _safe_suffix(filename: str) -> str:
    suffix = Path(filename).suffix.lower()
    if not suffix or len(suffix) > MAX_SUFFIX_LENGTH or not suffix[1:].isalnum():
        return ""
    return suffix


class LocalDocumentStorage:
    """Stores document bytes on the local filesystem under ``root``.

    Stored names are random UUIDs; the user's filename is kept only in the
    database. Blocking file I/O runs in a worker thread.
    """

    def __init__(self, root: str | os.PathLike[str]):
        self.root = Path(root)

    def _resolve(self, storage_path: str) -> Path:
        path = (self.root / storage_path).resolve()
        root = self.root.resolve()
        if root not in path.parents:
            raise ValueError("storage path escapes the upload directory")
        return path

    async def save(self, exchange_id: uuid.UUID, original_filename: str, data: bytes) -> tuple[str, str]:
        """Write ``data`` and return ``(stored filename, storage path)``."""
        filename = f"{uuid.uuid4().hex}{_safe_suffix(original_filename)}"
        storage_path = f"{exchange_id}/{filename}"
        path = self._resolve(storage_path)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        await asyncio.to_thread(_write)
        logger.debug("stored document path=%s bytes=%d", storage_path, len(data))
        return filename, storage_path

    def absolute_path(self, storage_path: str) -> Path:
        return self._resolve(storage_path)

    async def delete(self, storage_path: str) -> bool:
        path = self._resolve(storage_path)

        def _unlink() -> bool:
            try:
                path.unlink()
            except FileNotFoundError:
                return False
            return True

        removed = await asyncio.to_thread(_unlink)
        if not removed:
            logger.warning("document file already missing path=%s", storage_path)
        return removed
