import asyncio
import re
from collections import deque
from contextlib import suppress
from pathlib import Path
from typing import List, Optional

from loguru import logger

from clipvault.config.settings import FFmpegConfig
from clipvault.exceptions import TrimError

STDERR_CHUNK_SIZE = 65536
LINE_BREAK = re.compile(rb"[\r\n]")


def format_seconds(value: float) -> str:
    return f"{value:.3f}"


class ClipTrimmer:
    """
    Cuts ``[start, end)`` out of a staged video with ffmpeg.

    The default mode is a stream copy. With ``FFMPEG_TRANSCODE`` or
    ``FFMPEG_GPU_ACCELERATION`` set the clip is re-encoded; the GPU path is
    used only when an NVENC encoder passes a probe, and a failed GPU run is
    retried once in software.

    Example Usage:
    ---------------
    >>> trimmer = ClipTrimmer(FFmpegConfig())
    >>> await trimmer.trim(Path("origin.mp4"), Path("clip-0.mp4"), 0.0, 1.0)
    """

    def __init__(self, config: Optional[FFmpegConfig] = None):
        self.config = config or FFmpegConfig()
        self._gpu_available: Optional[bool] = None
        self._probe_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Argument builders
    # ------------------------------------------------------------------
    def copy_args(self, input_path: Path, output_path: Path, start_s: float, end_s: float) -> List[str]:
        return [
            "-y",
            "-ss", format_seconds(start_s),
            "-to", format_seconds(end_s),
            "-i", str(input_path),
            "-c", "copy",
            "-avoid_negative_ts", "1",
            str(output_path),
        ]

    def software_args(self, input_path: Path, output_path: Path, start_s: float, end_s: float) -> List[str]:
        cfg = self.config
        args = [
            "-y",
            "-ss", format_seconds(start_s),
            "-to", format_seconds(end_s),
            "-i", str(input_path),
            "-c:v", cfg.video_codec,
            "-preset", cfg.preset,
        ]
        if cfg.bitrate:
            args += ["-b:v", cfg.bitrate]
        else:
            args += ["-crf", str(cfg.crf)]
        args += ["-c:a", cfg.audio_codec, "-avoid_negative_ts", "1", str(output_path)]
        return args

    def gpu_args(self, input_path: Path, output_path: Path, start_s: float, end_s: float) -> List[str]:
        cfg = self.config
        return [
            "-y",
            "-hwaccel", "cuda",
            "-ss", format_seconds(start_s),
            "-to", format_seconds(end_s),
            "-i", str(input_path),
            "-c:v", cfg.gpu_encoder,
            "-preset", cfg.gpu_preset,
            "-b:v", cfg.gpu_bitrate,
            "-spatial-aq", "1" if cfg.gpu_spatial_aq else "0",
            "-temporal-aq", "1" if cfg.gpu_temporal_aq else "0",
            "-rc-lookahead", str(cfg.gpu_rc_lookahead),
            "-c:a", cfg.audio_codec,
            "-avoid_negative_ts", "1",
            str(output_path),
        ]

    # ------------------------------------------------------------------
    # GPU detection
    # ------------------------------------------------------------------
    async def _test_encoder(self, encoder: str) -> bool:
        """Test if a specific encoder is available"""
        try:
            process = await asyncio.create_subprocess_exec(
                self.config.binary,
                "-hide_banner",
                "-f", "lavfi",
                "-i", "testsrc=duration=1:size=320x240:rate=1",
                "-c:v", encoder,
                "-t", "1",
                "-f", "null",
                "-",
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError:
            return False
        try:
            await asyncio.wait_for(process.wait(), timeout=10)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            return False
        return process.returncode == 0

    async def gpu_available(self) -> bool:
        if self._gpu_available is None:
            async with self._probe_lock:
                if self._gpu_available is None:
                    self._gpu_available = await self._test_encoder(self.config.gpu_encoder)
                    if self._gpu_available:
                        logger.info(f"Using NVIDIA GPU encoder: {self.config.gpu_encoder}")
                    else:
                        logger.warning(
                            f"GPU encoder {self.config.gpu_encoder} unavailable, using CPU encoder: "
                            f"{self.config.video_codec}"
                        )
        return self._gpu_available

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------
    async def _collect_stderr(self, stream, tail: deque) -> None:
        """Keep the last lines of ffmpeg's stderr; progress updates end in ``\\r``."""
        pending = b""
        while True:
            chunk = await stream.read(STDERR_CHUNK_SIZE)
            if not chunk:
                break
            lines = LINE_BREAK.split(pending + chunk)
            pending = lines.pop()[-STDERR_CHUNK_SIZE:]
            tail.extend(line.decode(errors="replace").rstrip() for line in lines if line.strip())
        if pending.strip():
            tail.append(pending.decode(errors="replace").rstrip())

    async def _run_and_log(self, args: List[str], description: str) -> None:
        """Run ffmpeg and raise TrimError carrying the stderr tail on a non-zero exit."""
        command = [self.config.binary, *args]
        logger.debug(f"Starting: {description}")
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise TrimError(
                f"{description} failed: could not start {self.config.binary}: {e}",
                details={"command": command, "stderr_tail": []},
            ) from e

        tail = deque(maxlen=self.config.stderr_tail_lines)
        try:
            await self._collect_stderr(process.stderr, tail)
            returncode = await process.wait()
        finally:
            if process.returncode is None:
                logger.warning(f"Killing unfinished ffmpeg process for {description}")
                with suppress(ProcessLookupError):
                    process.kill()
                await process.wait()

        if returncode != 0:
            stderr_tail = list(tail)
            logger.error(f"{description} failed with exit code {returncode}")
            raise TrimError(
                f"{description} failed with exit code {returncode}: " + " | ".join(stderr_tail[-3:]),
                details={"command": command, "exit_code": returncode, "stderr_tail": stderr_tail},
            )
        logger.debug(f"{description} completed successfully.")

    async def trim(self, input_path: Path, output_path: Path, start_s: float, end_s: float) -> Path:
        if end_s <= start_s:
            raise TrimError(f"Invalid trim range {start_s:.3f}-{end_s:.3f}")
        description = f"trim {format_seconds(start_s)}-{format_seconds(end_s)} of {Path(input_path).name}"

        if not self.config.reencode:
            await self._run_and_log(self.copy_args(input_path, output_path, start_s, end_s), description)
            return output_path

        if self.config.gpu_acceleration and await self.gpu_available():
            try:
                await self._run_and_log(self.gpu_args(input_path, output_path, start_s, end_s), description)
                return output_path
            except TrimError as e:
                logger.warning(f"GPU {description} failed, retrying with {self.config.video_codec}: {e.message}")

        await self._run_and_log(self.software_args(input_path, output_path, start_s, end_s), description)
        return output_path
