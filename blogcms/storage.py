import logging
import os
import uuid
from typing import BinaryIO, Tuple

from .config import settings

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


class FileTooLarge(Exception):
    pass


class LocalStorage:
    """Stores uploaded bytes under a directory on local disk."""

    def __init__(self, root: str):
        self.root = root

    def ensure_root(self) -> None:
        os.makedirs(self.root, exist_ok=True)

    def unique_name(self, original_filename: str) -> str:
        _, ext = os.path.splitext(original_filename or "")
        return f"{uuid.uuid4().hex}{ext.lower()}"

    def path_for(self, filename: str) -> str:
        return os.path.join(self.root, filename)

    def save(self, source: BinaryIO, filename: str, max_size: int = None) -> Tuple[str, int]:
        """Copy `source` into the store; returns the stored path and its size in bytes."""
        self.ensure_root()
        file_path = self.path_for(filename)
        size = 0
        with open(file_path, "wb") as buffer:
            while True:
                chunk = source.read(CHUNK_SIZE)
                if not chunk:
                    break
                size += len(chunk)
                if max_size is not None and size > max_size:
                    buffer.close()
                    self.delete(file_path)
                    raise FileTooLarge(filename)
                buffer.write(chunk)
        return file_path, size

    def exists(self, file_path: str) -> bool:
        return os.path.isfile(file_path)

    def delete(self, file_path: str) -> None:
        try:
            if os.path.exists(file_path):
                os.remove(file_path)
        except OSError as exc:
            logger.warning("Could not delete stored file %s: %s", file_path, exc)


storage = LocalStorage(settings.UPLOAD_DIR)
