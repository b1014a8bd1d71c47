"""
SlopShield Pixel Analyzer
Closed-form pixel statistics over a decoded image sample.

Every statistic is normalized to [0, 1] where 1 means "more machine-like"
(smoother, more uniform, more regular). Large images are read with an
adaptive stride so the cost stays bounded; images below MIN_SIDE pixels on
either side get a neutral 0.5 for every feature.

Features:
- color_variance, color_uniformity, lab_color_variance, histogram_entropy
- edge_strength, edge_consistency (Sobel gradient magnitude)
- frequency_uniformity (block-mean vs within-block energy)
- texture_uniformity, texture_smoothness, gradient_smoothness, lbp_texture
- block_uniformity, multiscale_consistency
- artifact_score (8 px checkerboard and repeated 16 px tiles)
- noise_level, high_freq_content, spectral_high_band, noise_uniformity
  (delegated to NoiseAnalyzer)
"""

import hashlib
import logging
from typing import Callable, Dict, Iterable, Iterator, Optional, Tuple

import cv2
import numpy as np
from scipy import ndimage

from .noise_analyzer import NoiseAnalyzer
from .sample import ImageSample

logger = logging.getLogger(__name__)

NEUTRAL = 0.5
MIN_SIDE = 16

QUICK_FEATURES = (
    'color_uniformity', 'texture_uniformity', 'frequency_uniformity',
    'edge_strength', 'color_variance',
)


def sampling_stride(area: int) -> int:
    """Pixel stride for an image of the given original area."""
    if area < 100_000:
        return 1
    if area < 1_000_000:
        return 2
    return 3


class PixelAnalyzer:
    """
    Computes pixel-path features for an ImageSample.

    Feature functions receive a View (strided gray/rgb arrays) so sampling
    is done once per image rather than once per feature.
    """

    def __init__(self, noise_analyzer: Optional[NoiseAnalyzer] = None):
        self.noise = noise_analyzer or NoiseAnalyzer()
        self._features: Dict[str, Callable[['View'], float]] = {
            'color_variance': self.color_variance,
            'color_uniformity': self.color_uniformity,
            'edge_strength': self.edge_strength,
            'edge_consistency': self.edge_consistency,
            'frequency_uniformity': self.frequency_uniformity,
            'high_freq_content': lambda v: self.noise.high_freq_content(v.gray),
            'texture_uniformity': self.texture_uniformity,
            'texture_smoothness': self.texture_smoothness,
            'gradient_smoothness': self.gradient_smoothness,
            'noise_level': lambda v: self.noise.noise_level(v.gray),
            'noise_uniformity': lambda v: self.noise.noise_uniformity(v.gray),
            'lab_color_variance': self.lab_color_variance,
            'block_uniformity': self.block_uniformity,
            'histogram_entropy': self.histogram_entropy,
            'artifact_score': self.artifact_score,
            'lbp_texture': self.lbp_texture,
            'multiscale_consistency': self.multiscale_consistency,
            'spectral_high_band': lambda v: self.noise.spectral_high_band(v.gray),
        }

    @property
    def feature_names(self) -> Tuple[str, ...]:
        return tuple(self._features.keys())

    def iter_features(self, sample: ImageSample,
                      names: Optional[Iterable[str]] = None) -> Iterator[Tuple[str, float]]:
        """
        Yield (name, value) one feature at a time.

        Async callers interleave yields to the event loop between items.
        """
        view = View(sample)
        for name in (names if names is not None else self._features.keys()):
            fn = self._features.get(name)
            if fn is None:
                logger.debug(f"Unknown pixel feature requested: {name}")
                continue
            if view.too_small:
                yield name, NEUTRAL
                continue
            try:
                value = float(fn(view))
            except (ValueError, FloatingPointError, cv2.error) as e:
                logger.warning(f"Pixel feature {name} failed, using neutral: {e}")
                value = NEUTRAL
            yield name, value if np.isfinite(value) else NEUTRAL

    def analyze(self, sample: ImageSample, names: Optional[Iterable[str]] = None) -> Dict[str, float]:
        return dict(self.iter_features(sample, names))

    # ==================== COLOR ====================

    def color_variance(self, view: 'View') -> float:
        rgb = view.rgb.astype(np.float64)
        variance = float(np.mean([rgb[..., c].var() for c in range(3)]))
        return _clamp(1 - variance / 10000)

    def color_uniformity(self, view: 'View') -> float:
        """Share of the 512 quantized colours left unused."""
        q = (view.rgb // 32).astype(np.int32)
        codes = q[..., 0] * 64 + q[..., 1] * 8 + q[..., 2]
        unique = len(np.unique(codes))
        return _clamp(1 - unique / min(codes.size, 512))

    def lab_color_variance(self, view: 'View') -> float:
        lab = cv2.cvtColor(np.ascontiguousarray(view.rgb), cv2.COLOR_RGB2LAB).astype(np.float64)
        return _clamp(1 - (lab[..., 1].var() + lab[..., 2].var()) / 200)

    def histogram_entropy(self, view: 'View') -> float:
        entropies = []
        for c in range(3):
            hist = np.bincount(view.rgb[..., c].ravel(), minlength=256).astype(np.float64)
            p = hist[hist > 0] / hist.sum()
            entropies.append(float(-(p * np.log2(p)).sum()))
        return _clamp(1 - np.mean(entropies) / 8)

    # ==================== EDGES / GRADIENTS ====================

    def edge_strength(self, view: 'View') -> float:
        return _clamp(1 - float(view.sobel_magnitude.mean()) / 100)

    def edge_consistency(self, view: 'View') -> float:
        strong = view.sobel_magnitude[view.sobel_magnitude > 20]
        if strong.size < 10:
            return NEUTRAL
        mean = float(strong.mean())
        return _clamp(1 - float(strong.var()) / (mean ** 2 + 1))

    def gradient_smoothness(self, view: 'View') -> float:
        gy, gx = np.gradient(view.gray)
        magnitude = np.hypot(gx, gy)
        mean = float(magnitude.mean())
        return _clamp(1 - float(magnitude.var()) / (mean ** 2 + 100))

    # ==================== FREQUENCY / TEXTURE ====================

    def frequency_uniformity(self, view: 'View', block: int = 8) -> float:
        """
        Low- vs high-frequency energy from 8x8 blocks: variance of block
        means (low) against mean within-block variance (high).
        """
        blocks = _blocks(view.gray, block)
        if blocks is None:
            return NEUTRAL
        low = float(blocks.mean(axis=(2, 3)).var())
        high = float(blocks.var(axis=(2, 3)).mean())
        total = low + high
        if total < 1e-9:
            return 1.0
        return _clamp(1 - high / total * 4)

    def texture_uniformity(self, view: 'View') -> float:
        """Variance-of-variances over 3x3 neighbourhoods, as a CV (inverted)."""
        g = view.gray
        mean = ndimage.uniform_filter(g, size=3)
        local_var = np.maximum(ndimage.uniform_filter(g * g, size=3) - mean * mean, 0)
        cv = float(local_var.std()) / (float(local_var.mean()) + 1)
        return _clamp(1 - cv / 3)

    def texture_smoothness(self, view: 'View') -> float:
        g = view.gray
        dx = np.abs(np.diff(g, axis=1)).mean()
        dy = np.abs(np.diff(g, axis=0)).mean()
        return _clamp(1 - float(dx + dy) / 2 / 20)

    def lbp_texture(self, view: 'View') -> float:
        """Entropy of 8-neighbour local binary pattern codes (inverted)."""
        g = view.gray
        center = g[1:-1, 1:-1]
        codes = np.zeros(center.shape, dtype=np.int32)
        offsets = [(-1, -1), (-1, 0), (-1, 1), (0, 1), (1, 1), (1, 0), (1, -1), (0, -1)]
        h, w = g.shape
        for bit, (dy, dx) in enumerate(offsets):
            neighbour = g[1 + dy:h - 1 + dy, 1 + dx:w - 1 + dx]
            codes |= (neighbour >= center).astype(np.int32) << bit
        hist = np.bincount(codes.ravel(), minlength=256).astype(np.float64)
        p = hist[hist > 0] / hist.sum()
        return _clamp(1 - float(-(p * np.log2(p)).sum()) / 8)

    def block_uniformity(self, view: 'View') -> float:
        g = view.gray
        size = int(np.clip(min(g.shape) // 8, 16, 32))
        blocks = _blocks(g, size)
        if blocks is None or blocks.shape[0] * blocks.shape[1] < 4:
            return NEUTRAL
        return _clamp(1 - float(blocks.mean(axis=(2, 3)).var()) / 1000)

    def multiscale_consistency(self, view: 'View') -> float:
        """Fine-scale detail relative to coarse-scale detail (inverted)."""
        energies = []
        g = view.gray
        for factor in (1, 2, 4):
            scaled = _downsample(g, factor)
            if scaled is None or min(scaled.shape) < 8:
                return NEUTRAL
            residual = scaled - ndimage.uniform_filter(scaled, size=3)
            energies.append(float(residual.std()))
        if energies[-1] < 1e-6:
            return NEUTRAL
        return _clamp(1 - energies[0] / energies[-1])

    # ==================== ARTIFACTS ====================

    def artifact_score(self, view: 'View') -> float:
        """Periodic 8 px similarity beyond baseline plus duplicated 16 px tiles."""
        g = view.gray
        if min(g.shape) < 24:
            return NEUTRAL
        near8 = np.abs(g[8:, 8:] - g[:-8, :-8]) < 5
        near3 = np.abs(g[3:, 3:] - g[:-3, :-3]) < 5
        periodic = max(0.0, float(near8.mean()) - float(near3.mean()))

        tiles = _blocks(g, 16)
        repeat_ratio = 0.0
        if tiles is not None:
            seen = {}
            textured = 0
            for row in tiles:
                for tile in row:
                    if tile.std() < 2:
                        continue
                    textured += 1
                    digest = hashlib.md5((tile // 4).astype(np.uint8).tobytes()).hexdigest()
                    seen[digest] = seen.get(digest, 0) + 1
            if textured:
                duplicates = sum(count - 1 for count in seen.values())
                repeat_ratio = duplicates / textured
        return _clamp(periodic * 2 + repeat_ratio)


class View:
    """Strided arrays shared by every feature of one image."""

    def __init__(self, sample: ImageSample):
        self.stride = sampling_stride(sample.area)
        self.rgb = np.ascontiguousarray(sample.rgb[::self.stride, ::self.stride])
        self.gray = np.ascontiguousarray(sample.gray[::self.stride, ::self.stride])
        self.too_small = min(self.gray.shape) < MIN_SIDE
        self._sobel = None

    @property
    def sobel_magnitude(self) -> np.ndarray:
        if self._sobel is None:
            sx = ndimage.sobel(self.gray, axis=1)
            sy = ndimage.sobel(self.gray, axis=0)
            self._sobel = np.hypot(sx, sy)
        return self._sobel


def _blocks(arr: np.ndarray, size: int) -> Optional[np.ndarray]:
    """Reshape to (rows, cols, size, size) non-overlapping blocks, cropping the edge."""
    rows, cols = arr.shape[0] // size, arr.shape[1] // size
    if rows == 0 or cols == 0:
        return None
    cropped = arr[:rows * size, :cols * size]
    return cropped.reshape(rows, size, cols, size).swapaxes(1, 2)


def _downsample(arr: np.ndarray, factor: int) -> Optional[np.ndarray]:
    if factor == 1:
        return arr
    blocks = _blocks(arr, factor)
    return None if blocks is None else blocks.mean(axis=(2, 3))


def _clamp(value: float) -> float:
    if not np.isfinite(value):
        return NEUTRAL
    return max(0.0, min(1.0, float(value)))
