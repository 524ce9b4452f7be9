# garagehub/utils/storage.py
"""
Local-disk file storage: bytes in, stable reference string out.
"""

import logging
import os
import re

from garagehub.config import settings
from garagehub.utils import unique_string

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class LocalFileStorage:
    def __init__(self, root: str):
        self.root = root

    def save(self, data: bytes, filename: str, folder: str = "") -> str:
        safe_name = _UNSAFE_CHARS.sub("_", os.path.basename(filename or "file")) or "file"
        reference = "/".join(p for p in (folder, f"{unique_string(12)}_{safe_name}") if p)
        path = os.path.join(self.root, reference)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "wb") as f:
            f.write(data)
        return reference

    def delete(self, reference: str) -> bool:
        """Remove a stored file. Failures are logged and reported, never raised."""
        path = os.path.join(self.root, reference)
        try:
            os.remove(path)
            return True
        except OSError as e:
            logger.warning(f"Could not remove stored file {reference}: {e}")
            return False


def get_storage() -> LocalFileStorage:
    return LocalFileStorage(settings.UPLOAD_DIR)
