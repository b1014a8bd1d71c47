"""
SlopShield Image Detector Module
Detects generated images from page context and pixel statistics.

Components:
- MetadataAnalyzer: URL/context signatures, can short-circuit pixel work
- PixelAnalyzer: colour, edge, texture, frequency and artifact statistics
- NoiseAnalyzer: Laplacian noise, fine-detail residual and FFT bands
- ImageFeatureExtractor: runs both paths with pixel-access fallback
- LocalImageClassifier: quick and refined scoring
"""

from .sample import ImagePayload, ImageSample, decode_image, load_sample
from .metadata_analyzer import MetadataAnalyzer
from .noise_analyzer import NoiseAnalyzer
from .pixel_analyzer import PixelAnalyzer, sampling_stride
from .extractor import ImageFeatureExtractor, ImageExtraction
from .classifier import LocalImageClassifier

__all__ = [
    'ImagePayload',
    'ImageSample',
    'decode_image',
    'load_sample',
    'MetadataAnalyzer',
    'NoiseAnalyzer',
    'PixelAnalyzer',
    'sampling_stride',
    'ImageFeatureExtractor',
    'ImageExtraction',
    'LocalImageClassifier',
]
