import asyncio
from pathlib import Path, PurePosixPath
from typing import Optional
from urllib.parse import unquote, urlparse

import aiofiles
import aiohttp
from loguru import logger

from clipvault.config.settings import VideoConfig
from clipvault.exceptions import IngestionException
from clipvault.pipeline.models import MediaSource, RemoteSource, StagedSources, UploadedSource
from clipvault.pipeline.workspace import Workspace

VIDEO_FALLBACK_NAME = "origin.mp4"
ANIMATION_FALLBACK_NAME = "origin.bin"
CHUNK_SIZE = 1024 * 1024


def file_name_from_url(url: str, fallback: str) -> str:
    """Base name of the URL path component, or ``fallback`` when it has none."""
    name = unquote(PurePosixPath(urlparse(url).path).name)
    return name if name not in ("", ".", "..") else fallback


def file_name_from_upload(filename: Optional[str], fallback: str) -> str:
    if not filename:
        return fallback
    name = PurePosixPath(filename.replace("\\", "/")).name
    return name if name not in ("", ".", "..") else fallback


class SourceAcquirer:
    """
    Stages the source video and optional animation binary inside a request workspace.

    Remote sources are downloaded with a total timeout. A declared Content-Length
    above ``max_download_size_mb`` is rejected before the body is read. Responses
    without Content-Length are streamed uncapped. Uploaded streams are copied with
    a hard cap of ``max_upload_size_mb``.
    """

    def __init__(self, config: VideoConfig):
        self.config = config

    async def acquire(
        self,
        workspace: Workspace,
        video: MediaSource,
        animation: Optional[MediaSource] = None,
    ) -> StagedSources:
        video_name = self._local_name(video, VIDEO_FALLBACK_NAME)
        tasks = [self.stage(workspace, video, video_name)]
        if animation is not None:
            animation_name = self._local_name(animation, ANIMATION_FALLBACK_NAME)
            if animation_name == video_name:
                animation_name = f"animation-{animation_name}"
            tasks.append(self.stage(workspace, animation, animation_name))

        results = await asyncio.gather(*tasks, return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException):
                raise result

        animation_bytes = None
        if animation is not None:
            animation_bytes = await self._read_bytes(results[1])
            logger.debug(f"Staged animation binary ({len(animation_bytes)} bytes)")
        return StagedSources(video_path=results[0], animation=animation_bytes)

    async def stage(self, workspace: Workspace, source: MediaSource, file_name: str) -> Path:
        target = workspace.path_for(file_name)
        try:
            if isinstance(source, RemoteSource):
                await self.download(source.url, target)
            elif isinstance(source, UploadedSource):
                await self.copy_upload(source, target)
            else:
                raise IngestionException(f"Unsupported media source: {type(source).__name__}")
        except Exception:
            await workspace.remove_file(target)
            raise
        return target

    def _local_name(self, source: MediaSource, fallback: str) -> str:
        if isinstance(source, RemoteSource):
            return file_name_from_url(source.url, fallback)
        if isinstance(source, UploadedSource):
            return file_name_from_upload(source.filename, fallback)
        return fallback

    async def download(self, url: str, target: Path) -> int:
        """Stream ``url`` into ``target``; return the number of bytes written."""
        timeout = aiohttp.ClientTimeout(total=self.config.download_timeout_ms / 1000)
        max_bytes = self.config.max_download_bytes
        written = 0
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(url) as response:
                    if not 200 <= response.status < 300:
                        raise IngestionException(
                            f"Failed to download {url}: {response.status} {response.reason}",
                            details={"url": url, "status": response.status},
                        )
                    declared = response.content_length
                    if declared is not None and declared > max_bytes:
                        raise IngestionException(
                            f"Remote file too large: {declared} bytes exceeds {max_bytes}",
                            details={"url": url, "content_length": declared, "max_bytes": max_bytes},
                        )
                    if declared is None:
                        logger.warning(f"No Content-Length for {url}; downloading without a size cap")
                    async with aiofiles.open(target, "wb") as f:
                        async for chunk in response.content.iter_chunked(CHUNK_SIZE):
                            await f.write(chunk)
                            written += len(chunk)
        except IngestionException:
            raise
        except asyncio.TimeoutError as e:
            raise IngestionException(
                f"Timed out downloading {url} after {self.config.download_timeout_ms} ms",
                details={"url": url},
            ) from e
        except (aiohttp.ClientError, OSError, ValueError) as e:
            raise IngestionException(f"Failed to download {url}: {e}", details={"url": url}) from e

        logger.info(f"Downloaded {url} ({written} bytes) to {target.name}")
        return written

    async def copy_upload(self, source: UploadedSource, target: Path) -> int:
        """Copy an uploaded stream into ``target``; return the number of bytes written."""
        max_bytes = self.config.max_upload_bytes
        written = 0
        try:
            async with aiofiles.open(target, "wb") as f:
                while chunk := await source.stream.read(CHUNK_SIZE):
                    written += len(chunk)
                    if written > max_bytes:
                        raise IngestionException(
                            f"Uploaded file exceeds {max_bytes} bytes",
                            details={"file_name": target.name, "max_bytes": max_bytes},
                        )
                    await f.write(chunk)
        except IngestionException:
            raise
        except Exception as e:
            raise IngestionException(f"Failed to stage uploaded file {target.name}: {e}") from e

        if written == 0:
            raise IngestionException(f"Uploaded file {target.name} is empty")
        logger.debug(f"Staged uploaded file {target.name} ({written} bytes)")
        return written

    async def _read_bytes(self, path: Path) -> bytes:
        try:
            async with aiofiles.open(path, "rb") as f:
                return await f.read()
        except OSError as e:
            raise IngestionException(f"Failed to read staged file {path.name}: {e}") from e
