"""RGBA image buffers and PNG encoding/decoding."""

from __future__ import annotations

import io
from dataclasses import dataclass

import numpy as np
from PIL import Image


@dataclass(frozen=True)
class Image2d:
    """Decoded RGBA image. ``data`` has shape ``(height, width, 4)`` and dtype uint8."""

    width: int
    height: int
    data: np.ndarray

    @classmethod
    def from_array(cls, data: np.ndarray) -> "Image2d":
        if data.ndim != 3 or data.shape[2] != 4:
            raise ValueError(f"Expected an RGBA array, got shape {data.shape}")
        return cls(width=data.shape[1], height=data.shape[0], data=data.astype(np.uint8, copy=False))

    @classmethod
    def solid(cls, width: int, height: int, rgba: tuple[int, int, int, int]) -> "Image2d":
        data = np.empty((height, width, 4), dtype=np.uint8)
        data[:, :] = rgba
        return cls(width=width, height=height, data=data)


def decode_png(data: bytes) -> Image2d:
    """Decode PNG bytes into an RGBA buffer."""
    with Image.open(io.BytesIO(data)) as img:
        rgba = img.convert("RGBA")
        return Image2d.from_array(np.asarray(rgba, dtype=np.uint8).copy())


def encode_png(image: Image2d) -> bytes:
    """Encode an RGBA buffer as PNG bytes."""
    buffer = io.BytesIO()
    Image.fromarray(image.data).save(buffer, format="PNG")
    return buffer.getvalue()
