"""
Image payloads and decoded pixel samples.

An ImagePayload is what the discovery stream delivers for an image: page
context (URLs, alt/title, nearby text, declared size) plus whatever pixel
data the host could read. An ImageSample is the decoded, downscaled RGB
raster the pixel analyzers work on.
"""
from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

import numpy as np
from PIL import Image, UnidentifiedImageError

from core.errors import PixelAccessDenied

logger = logging.getLogger(__name__)

MAX_SAMPLE_SIDE = 512


@dataclass
class ImagePayload:
    src: str = ''
    link_url: str = ''
    alt: str = ''
    title: str = ''
    context_text: str = ''
    declared_width: Optional[int] = None
    declared_height: Optional[int] = None
    image_data: Optional[bytes] = None
    pixels: Optional[np.ndarray] = None
    cross_origin_blocked: bool = False

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> 'ImagePayload':
        """Build from a discovery-event dict; unknown keys are ignored."""
        return cls(
            src=str(data.get('src') or ''),
            link_url=str(data.get('link_url') or data.get('href') or ''),
            alt=str(data.get('alt') or ''),
            title=str(data.get('title') or ''),
            context_text=str(data.get('context_text') or ''),
            declared_width=_as_int(data.get('width', data.get('declared_width'))),
            declared_height=_as_int(data.get('height', data.get('declared_height'))),
            image_data=data.get('image_data'),
            pixels=data.get('pixels'),
            cross_origin_blocked=bool(data.get('cross_origin_blocked', False)),
        )

    @property
    def context(self) -> str:
        return ' '.join(p for p in (self.alt, self.title, self.context_text) if p)


class ImageSample:
    """
    RGB uint8 raster, at most MAX_SAMPLE_SIDE pixels on its longest side.

    Attributes:
        rgb: (h, w, 3) uint8 array
        gray: (h, w) float64 luminance
        original_size: (width, height) before downscaling
    """

    def __init__(self, rgb: np.ndarray, original_size: Optional[tuple] = None):
        if rgb.ndim == 2:
            rgb = np.stack([rgb] * 3, axis=-1)
        if rgb.shape[-1] == 4:
            rgb = rgb[..., :3]
        self.rgb = np.ascontiguousarray(rgb, dtype=np.uint8)
        self.gray = (0.299 * self.rgb[..., 0] + 0.587 * self.rgb[..., 1]
                     + 0.114 * self.rgb[..., 2]).astype(np.float64)
        self.original_size = original_size or (self.width, self.height)

    @property
    def width(self) -> int:
        return int(self.rgb.shape[1])

    @property
    def height(self) -> int:
        return int(self.rgb.shape[0])

    @property
    def area(self) -> int:
        return self.original_size[0] * self.original_size[1]


def decode_image(image_data: bytes, max_side: int = MAX_SAMPLE_SIDE) -> ImageSample:
    """
    Decode raw image bytes into a downscaled RGB sample.

    Raises:
        PixelAccessDenied: bytes are not a decodable image
    """
    try:
        image = Image.open(io.BytesIO(image_data))
        image.load()
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise PixelAccessDenied(f"Image bytes could not be decoded: {e}") from e

    original_size = image.size
    if image.mode != 'RGB':
        image = image.convert('RGB')
    if max(image.size) > max_side:
        image.thumbnail((max_side, max_side), Image.Resampling.BILINEAR)
    return ImageSample(np.array(image), original_size=original_size)


def load_sample(payload: ImagePayload, max_side: int = MAX_SAMPLE_SIDE) -> ImageSample:
    """
    Get the pixel sample for a payload.

    Raises:
        PixelAccessDenied: the host could not read pixels (cross-origin) or
            the payload carries no pixel data at all
    """
    if payload.cross_origin_blocked:
        raise PixelAccessDenied(f"Cross-origin pixel read blocked for {payload.src[:80]}")
    if payload.pixels is not None:
        pixels = np.asarray(payload.pixels)
        if pixels.ndim not in (2, 3) or pixels.size == 0:
            raise PixelAccessDenied('Pixel buffer has an unusable shape')
        if max(pixels.shape[:2]) > max_side:
            image = Image.fromarray(pixels.astype(np.uint8))
            original_size = image.size
            image.thumbnail((max_side, max_side), Image.Resampling.BILINEAR)
            return ImageSample(np.array(image.convert('RGB')), original_size=original_size)
        return ImageSample(pixels.astype(np.uint8))
    if payload.image_data:
        return decode_image(payload.image_data, max_side)
    raise PixelAccessDenied(f"No pixel data available for {payload.src[:80] or 'image'}")


def _as_int(value) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None
