"""Local file storage for uploaded documents and result files."""

from __future__ import annotations

import re
from pathlib import Path
from uuid import UUID, uuid4

import aiofiles
import aiofiles.os

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


def safe_filename(filename: str) -> str:
    name = Path(filename or "upload").name
    return _UNSAFE.sub("_", name)[:120] or "upload"


class LocalFileStorage:
    """Stores objects under ``root`` keyed by ``<booking_id>/<uuid>_<name>``."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def key_for(self, booking_id: UUID, filename: str) -> str:
        return f"{booking_id}/{uuid4().hex}_{safe_filename(filename)}"

    def path_for(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root.resolve() not in path.parents:
            raise ValueError(f"Storage key escapes storage root: {key}")
        return path

    async def save(self, key: str, content: bytes) -> None:
        path = self.path_for(key)
        await aiofiles.os.makedirs(path.parent, exist_ok=True)
        async with aiofiles.open(path, "wb") as out_file:
            await out_file.write(content)

    async def delete(self, key: str) -> None:
        """Remove an object.

        Raises:
            FileNotFoundError: If the object does not exist
            OSError: If the object could not be removed
        """
        await aiofiles.os.remove(self.path_for(key))

    def exists(self, key: str) -> bool:
        return self.path_for(key).is_file()
