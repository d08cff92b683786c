"""Image file storage under the uploads directory.

Stored files are referenced as ``/uploads/<filename>``; the API serves that
path as static files.
"""
import logging
import uuid
from pathlib import Path
from typing import Iterable, List, Optional

import aiofiles
import aiofiles.os

from config import settings_conf
from errors import ValidationError

logger = logging.getLogger(__name__)

URL_PREFIX = '/uploads/'
ALLOWED_EXTENSIONS = {'.jpeg', '.jpg', '.png', '.gif', '.webp'}
MAX_IMAGE_BYTES = 5 * 1024 * 1024  # 5MB


class ImageStore:
    """Saves uploaded images and removes them again."""

    def __init__(self, uploads_dir: Optional[str] = None):
        self.uploads_dir = Path(uploads_dir or settings_conf['uploads_dir'])

    def path_for(self, ref: str) -> Optional[Path]:
        """Resolve an ``/uploads/...`` reference to a file in the uploads directory."""
        if not ref or not ref.startswith(URL_PREFIX):
            return None
        name = Path(ref).name
        if not name:
            return None
        return self.uploads_dir / name

    async def save(self, upload) -> str:
        """Save one uploaded file and return its reference.

        Raises:
            ValidationError: If the file is not an allowed image or is too large
        """
        extension = Path(upload.filename or '').suffix.lower()
        if extension not in ALLOWED_EXTENSIONS:
            raise ValidationError("Only image files are allowed")

        content = await upload.read()
        if len(content) > MAX_IMAGE_BYTES:
            raise ValidationError("Image exceeds the 5MB size limit")

        await aiofiles.os.makedirs(self.uploads_dir, exist_ok=True)
        filename = f"{uuid.uuid4().hex}{extension}"
        async with aiofiles.open(self.uploads_dir / filename, 'wb') as f:
            await f.write(content)

        logger.info(f"Saved image {filename}")
        return f"{URL_PREFIX}{filename}"

    async def save_all(self, uploads: Iterable) -> List[str]:
        """Save several files; if one fails the ones already saved are removed."""
        refs: List[str] = []
        try:
            for upload in uploads:
                refs.append(await self.save(upload))
        except Exception:
            await self.delete_all(refs)
            raise
        return refs

    async def delete(self, ref: str) -> None:
        path = self.path_for(ref)
        if path is None:
            return
        try:
            await aiofiles.os.remove(path)
            logger.info(f"Deleted image {path.name}")
        except FileNotFoundError:
            logger.warning(f"Image already gone: {path.name}")

    async def delete_all(self, refs: Iterable[str]) -> None:
        for ref in refs:
            await self.delete(ref)
