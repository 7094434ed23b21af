# infrastructure/file_storage.py
import asyncio
import logging
import os
from pathlib import Path
from typing import Optional, Union

from core.interfaces import IFileStorage

from config import settings

logger = logging.getLogger(settings.LOGGER_NAME)


class LocalFileStorage(IFileStorage):
    """Keeps uploaded document bytes on local disk, one file per stored_filename."""

    def __init__(self, base_path: Union[str, Path]):
        self.base_path = Path(base_path).resolve()
        try:
            self.base_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Cannot use upload directory {self.base_path}: {e}")
            raise
        logger.info(f"Document storage at {self.base_path}")

    def _resolve(self, filename: str) -> Path:
        # Stored names are generated server-side; anything escaping base_path is rejected
        target = (self.base_path / filename).resolve()
        if target.parent != self.base_path:
            raise ValueError(f"Invalid stored filename: {filename}")
        return target

    @staticmethod
    def _write_atomic(target: Path, content: bytes) -> None:
        partial = target.with_name(target.name + ".part")
        partial.write_bytes(content)
        os.replace(partial, target)

    async def save(self, content: bytes, filename: str) -> str:
        target = self._resolve(filename)
        try:
            await asyncio.to_thread(self._write_atomic, target, content)
        except OSError as e:
            logger.error(f"Writing {len(content)} bytes to {target} failed: {e}")
            raise
        logger.debug(f"Stored {filename} ({len(content)} bytes)")
        return str(target)

    async def get_path(self, filename: str) -> Optional[str]:
        target = self._resolve(filename)
        return str(target) if target.is_file() else None

    async def delete(self, filename: str) -> bool:
        """Removes a stored file. Missing files and OS errors yield False."""
        try:
            target = self._resolve(filename)
            await asyncio.to_thread(target.unlink)
        except FileNotFoundError:
            logger.warning(f"Stored file {filename} already gone")
            return False
        except (OSError, ValueError) as e:
            logger.error(f"Could not delete stored file {filename}: {e}")
            return False
        logger.info(f"Deleted stored file {filename}")
        return True
