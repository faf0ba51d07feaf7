"""Packed YUYV (4:2:2) to RGB24 conversion.

Uses the integer BT.601 transform with a +128 rounding bias before the 8-bit
shift, so output is byte-identical to the classic fixed-point C routine.
"""

import numpy as np

from segment_stream.errors import SizeError
from segment_stream.video.types import Frame, FrameMetadata

YUYV_BYTES_PER_PIXEL = 2


def yuyv_to_rgb(
    width: int, height: int, buf: bytes, frame_number: int = 0, source: str = "yuyv"
) -> Frame:
    """Convert a packed YUYV buffer into an RGB frame.

    Each 4-byte macropixel (Y0, U, Y1, V) yields two RGB pixels sharing the
    chroma pair. Macropixels run in raster order and may span a row end, so
    odd widths are fine as long as the pixel count is even. Bytes past
    width * height * 2 are ignored, which tolerates drivers that hand out
    padded buffers.

    Args:
        width: Frame width in pixels
        height: Frame height in pixels
        buf: Raw YUYV bytes
        frame_number: Frame number to record in metadata
        source: Source name to record in metadata

    Returns:
        RGB frame of width * height * 3 bytes

    Raises:
        SizeError: If the buffer is too small or the pixel count is odd
    """
    if width <= 0 or height <= 0:
        raise SizeError(f"Invalid dimensions: {width}x{height}")
    if (width * height) % 2:
        raise SizeError(
            f"YUYV frame needs an even pixel count, got {width}x{height}"
        )

    expected_len = width * height * YUYV_BYTES_PER_PIXEL
    if len(buf) < expected_len:
        raise SizeError(
            f"YUYV buffer too small: got {len(buf)}, expected {expected_len}"
        )

    packed = np.frombuffer(buf, dtype=np.uint8, count=expected_len)
    macro = packed.reshape(-1, 4).astype(np.int32)

    # (N, 2) luma, one column per output pixel of the macropixel
    c = macro[:, [0, 2]] - 16
    d = (macro[:, 1] - 128)[:, np.newaxis]
    e = (macro[:, 3] - 128)[:, np.newaxis]

    r = (298 * c + 409 * e + 128) >> 8
    g = (298 * c - 100 * d - 208 * e + 128) >> 8
    b = (298 * c + 516 * d + 128) >> 8

    rgb = np.stack((r, g, b), axis=-1)
    np.clip(rgb, 0, 255, out=rgb)

    data = rgb.astype(np.uint8).reshape(height, width, 3)
    metadata = FrameMetadata(
        width=width, height=height, frame_number=frame_number, source=source
    )
    return Frame(data=data, metadata=metadata)
