"""
SlopShield Noise Pattern Analyzer
Noise and frequency-band statistics for the pixel path.

Natural camera images carry sensor noise and a healthy share of
high-frequency energy. Generated images are typically smoother: less
Laplacian noise, weaker fine-detail residual and a spectrum that falls off
early.

All methods take a 2-D float64 luminance array and return a score in
[0, 1] where 1 means "more machine-like".
"""

import logging

import cv2
import numpy as np
from scipy import ndimage

logger = logging.getLogger(__name__)

NEUTRAL = 0.5
MIN_SIDE = 16


class NoiseAnalyzer:
    """
    Analyzes noise patterns in images to detect AI generation.

    AI-generated images typically show:
    - Missing high-frequency sensor noise
    - Perfect gradients without noise texture
    - Spectra dominated by low frequencies
    """

    # Laplacian std at which an image counts as fully noisy
    NOISE_STD_SCALE = 25.0
    # Residual std (after a 3x3 mean) at which fine detail counts as natural
    RESIDUAL_STD_SCALE = 8.0
    # High band share (percent) below which the spectrum looks generated
    HIGH_BAND_LOW_PCT = 5.0
    HIGH_BAND_HIGH_PCT = 15.0

    def noise_level(self, gray: np.ndarray) -> float:
        if min(gray.shape) < MIN_SIDE:
            return NEUTRAL
        laplacian = cv2.Laplacian(gray, cv2.CV_64F)
        return _clamp(1 - float(laplacian.std()) / self.NOISE_STD_SCALE)

    def high_freq_content(self, gray: np.ndarray) -> float:
        """Energy left after removing the local 3x3 mean (inverted)."""
        if min(gray.shape) < MIN_SIDE:
            return NEUTRAL
        residual = gray - ndimage.uniform_filter(gray, size=3)
        return _clamp(1 - float(residual.std()) / self.RESIDUAL_STD_SCALE)

    def spectral_high_band(self, gray: np.ndarray) -> float:
        """Share of FFT magnitude outside the mid-frequency radius (inverted)."""
        if min(gray.shape) < MIN_SIDE:
            return NEUTRAL
        bands = self.frequency_bands(gray)
        span = self.HIGH_BAND_HIGH_PCT - self.HIGH_BAND_LOW_PCT
        return _clamp(1 - (bands['high_freq'] - self.HIGH_BAND_LOW_PCT) / span)

    def frequency_bands(self, gray: np.ndarray) -> dict:
        """
        Split the centred FFT magnitude into low/mid/high radial bands.

        Returns:
            dict with low_freq, mid_freq, high_freq as percentages
        """
        f_shift = np.fft.fftshift(np.fft.fft2(gray - gray.mean()))
        magnitude = np.abs(f_shift)

        h, w = magnitude.shape
        center_h, center_w = h // 2, w // 2
        y, x = np.ogrid[:h, :w]
        radius_sq = (y - center_h) ** 2 + (x - center_w) ** 2

        low_radius = max(1, min(h, w) // 8)
        mid_radius = max(low_radius + 1, min(h, w) // 4)
        low_mask = radius_sq <= low_radius ** 2
        mid_mask = (radius_sq > low_radius ** 2) & (radius_sq <= mid_radius ** 2)
        high_mask = radius_sq > mid_radius ** 2

        low = float(magnitude[low_mask].mean()) if low_mask.any() else 0.0
        mid = float(magnitude[mid_mask].mean()) if mid_mask.any() else 0.0
        high = float(magnitude[high_mask].mean()) if high_mask.any() else 0.0
        total = low + mid + high + 1e-6

        return {
            'low_freq': low / total * 100,
            'mid_freq': mid / total * 100,
            'high_freq': high / total * 100,
        }

    def noise_uniformity(self, gray: np.ndarray, patch_size: int = 32) -> float:
        """How evenly Laplacian noise spreads over patches; 1 = perfectly even."""
        h, w = gray.shape
        patches = [
            cv2.Laplacian(np.ascontiguousarray(gray[i:i + patch_size, j:j + patch_size]), cv2.CV_64F).var()
            for i in range(0, h - patch_size + 1, patch_size)
            for j in range(0, w - patch_size + 1, patch_size)
        ]
        if len(patches) < 2:
            return NEUTRAL
        return _clamp(1 - float(np.std(patches)) / (float(np.mean(patches)) + 1e-6))


def _clamp(value: float) -> float:
    if not np.isfinite(value):
        return NEUTRAL
    return max(0.0, min(1.0, value))
