"""
Frame-addressed slicing of animation/rig binaries.

An animation binary is an 8-byte little-endian header followed by fixed-size
per-frame records::

    uint32 frame_count
    uint32 frame_size        # bytes per record
    frame_count * frame_size bytes of records

Record contents are opaque here. A slice is the byte-exact run of records for
the selected inclusive frame range, without a header, so it is always a whole
number of records long.
"""

import struct
from typing import Sequence, Tuple

from clipvault.exceptions import AnimationSliceError

HEADER = struct.Struct("<II")
HEADER_SIZE = HEADER.size


def read_header(buffer: bytes) -> Tuple[int, int]:
    """Return ``(frame_count, frame_size)`` after checking the buffer is consistent."""
    if len(buffer) < HEADER_SIZE:
        raise AnimationSliceError(
            f"Animation buffer too short for header: {len(buffer)} bytes",
            details={"buffer_bytes": len(buffer)},
        )
    count, size = HEADER.unpack_from(buffer, 0)
    if size == 0:
        raise AnimationSliceError("Animation frame size cannot be zero")
    expected = HEADER_SIZE + count * size
    if len(buffer) != expected:
        raise AnimationSliceError(
            f"Animation buffer length {len(buffer)} does not match header ({count} x {size} bytes)",
            details={"buffer_bytes": len(buffer), "expected_bytes": expected},
        )
    return count, size


def frame_count(buffer: bytes) -> int:
    return read_header(buffer)[0]


def pack_animation(frames: Sequence[bytes]) -> bytes:
    """Build an animation buffer from equally sized frame records."""
    if not frames:
        raise AnimationSliceError("Cannot pack an animation without frames")
    size = len(frames[0])
    if size == 0 or any(len(frame) != size for frame in frames):
        raise AnimationSliceError("All frame records must share one non-zero size")
    return HEADER.pack(len(frames), size) + b"".join(frames)


def slice_animation(buffer: bytes, start_frame: int, last_frame: int) -> bytes:
    """
    Return the records for the inclusive frame range ``[start_frame, last_frame]``.

    The result is exactly ``(last_frame - start_frame + 1) * frame_size`` bytes.

    Raises:
        AnimationSliceError: if the buffer is malformed or the range falls outside
            the encoded frames. Ranges are never silently truncated.
    """
    count, size = read_header(buffer)
    if start_frame < 0 or last_frame < start_frame:
        raise AnimationSliceError(
            f"Invalid animation frame range [{start_frame}, {last_frame}]",
            details={"start_frame": start_frame, "last_frame": last_frame},
        )
    if last_frame >= count:
        raise AnimationSliceError(
            f"Animation frame {last_frame} out of range; buffer encodes {count} frames",
            details={"start_frame": start_frame, "last_frame": last_frame, "frame_count": count},
        )

    selected = last_frame - start_frame + 1
    begin = HEADER_SIZE + start_frame * size
    end = begin + selected * size
    return bytes(buffer[begin:end])
