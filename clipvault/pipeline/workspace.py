import asyncio
import shutil
import tempfile
from pathlib import Path
from typing import Optional

import aiofiles.os
from loguru import logger


class Workspace:
    """
    Exclusively owned temporary directory for one ingestion request.

    Use as an async context manager; the directory and everything inside it is
    removed on exit whether the body succeeded or raised.

    Example Usage:
    ---------------
    >>> async with Workspace(prefix="bucket-") as ws:
    >>>     target = ws.path_for("origin.mp4")
    """

    def __init__(self, prefix: str = "bucket-", base_dir: Optional[str] = None):
        self.prefix = prefix
        self.base_dir = base_dir
        self._path: Optional[Path] = None

    @property
    def path(self) -> Path:
        if self._path is None:
            raise RuntimeError("Workspace has not been created")
        return self._path

    @property
    def exists(self) -> bool:
        return self._path is not None and self._path.exists()

    def path_for(self, file_name: str) -> Path:
        """Return a path inside the workspace, keeping only the base name of ``file_name``."""
        safe_name = Path(file_name).name
        if not safe_name or safe_name in (".", ".."):
            raise ValueError(f"Invalid workspace file name: {file_name!r}")
        return self.path / safe_name

    async def create(self) -> Path:
        self._path = Path(await asyncio.to_thread(tempfile.mkdtemp, prefix=self.prefix, dir=self.base_dir))
        logger.debug(f"Created workspace {self._path}")
        return self._path

    async def destroy(self):
        if self._path is None:
            return
        await asyncio.to_thread(shutil.rmtree, self._path, True)
        logger.debug(f"Cleaned up workspace {self._path}")

    async def remove_file(self, path: Path):
        """Delete a single workspace file; a missing file is not an error."""
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            pass

    async def __aenter__(self) -> "Workspace":
        await self.create()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.destroy()
        return False
