"""Local filesystem storage for uploaded documents.

Storage layout:
    <upload_dir>/<collection_id>/<stem>_<YYYYMMDD_HHmmss>.<ext>

Paths handed to the ingestion pipeline are relative to ``upload_dir``;
the pipeline only ever reads them.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass
class StoredFile:
    """Result of storing a single file on disk."""

    relative_path: str
    filename: str
    original_filename: str
    file_size: int


def _datetime_stamp() -> str:
    """Return a UTC datetime stamp suitable for filenames: YYYYMMDD_HHmmss."""
    return datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")


def _sanitise(name: str, max_len: int = 80) -> str:
    """Replace non-word characters with underscores and truncate."""
    return re.sub(r"[^\w\-]", "_", name)[:max_len].strip("_") or "unnamed"


class LocalFileStorage:
    """Infrastructure adapter for local file storage."""

    def __init__(self, upload_dir: str):
        self._upload_dir = Path(upload_dir)
        self._upload_dir.mkdir(parents=True, exist_ok=True)

    async def store_file(self, content: bytes, filename: str, collection_id: str) -> StoredFile:
        """Store an uploaded file under ``<upload_dir>/<collection_id>/``.

        The filename is augmented with a UTC datetime stamp to avoid
        collisions: ``<stem>_<YYYYMMDD_HHmmss>.<ext>``.
        """
        target_dir = self._upload_dir / _sanitise(collection_id)
        target_dir.mkdir(parents=True, exist_ok=True)

        stem = Path(filename).stem
        suffix = Path(filename).suffix.lower()
        stamped_name = f"{_sanitise(stem)}_{_datetime_stamp()}{suffix}"

        dest_path = target_dir / stamped_name
        dest_path.write_bytes(content)
        logger.info("Stored file: %s (%d bytes)", dest_path, len(content))

        return StoredFile(
            relative_path=str(dest_path.relative_to(self._upload_dir)),
            filename=stamped_name,
            original_filename=filename,
            file_size=len(content),
        )

    def resolve_path(self, file_path: str) -> Path:
        """Return the absolute path of a stored file.

        Relative paths are resolved against ``upload_dir``; a relative path
        may not escape it.

        Raises:
            FileNotFoundError: If no file exists at the resolved path.
        """
        path = Path(file_path)
        if not path.is_absolute():
            root = self._upload_dir.resolve()
            path = (root / path).resolve()
            if root != path and root not in path.parents:
                raise FileNotFoundError(f"File path escapes upload directory: {file_path}")
        if not path.is_file():
            raise FileNotFoundError(f"File not found: {file_path}")
        return path
