"""
Test Suite for the Image Feature Extractor
Tests the metadata short-circuit, pixel statistics and graceful fallbacks
with synthetic images.
"""

import io
import sys
from pathlib import Path

import numpy as np
import pytest
from PIL import Image
from PIL.PngImagePlugin import PngInfo

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / 'backend'))

from core.errors import PixelAccessDenied
from core.types import ScoreSource
from image_detector import (
    ImageFeatureExtractor,
    ImagePayload,
    ImageSample,
    LocalImageClassifier,
    MetadataAnalyzer,
    NoiseAnalyzer,
    PixelAnalyzer,
    decode_image,
    load_sample,
    sampling_stride,
)
from image_detector.pixel_analyzer import NEUTRAL


def png_bytes(array, info=None):
    buf = io.BytesIO()
    Image.fromarray(array).save(buf, format='PNG', pnginfo=info)
    return buf.getvalue()


@pytest.fixture
def smooth_rgb():
    """Soft diagonal gradient, the kind of surface generators favour"""
    y, x = np.mgrid[0:128, 0:128]
    base = ((x + y) / 2).astype(np.uint8)
    return np.stack([base, base // 2 + 60, 255 - base], axis=-1)


@pytest.fixture
def noisy_rgb():
    """Per-pixel random noise, like an untouched high-ISO photo"""
    rng = np.random.default_rng(42)
    return rng.integers(0, 256, (128, 128, 3), dtype=np.uint8)


class TestMetadataPath:
    """URL and context signals"""

    @pytest.fixture
    def analyzer(self):
        return MetadataAnalyzer()

    def test_generator_domain_short_circuits(self, analyzer):
        meta = analyzer.analyze(ImagePayload(src='https://cdn.midjourney.com/abc/grid_0.png'))
        assert meta['url_score'] == 0.9
        assert meta['short_circuit']
        assert meta['confidence'] == 0.9

    def test_keywords_accumulate(self, analyzer):
        score, hits = analyzer.score_url('https://example.com/uploads/ai-generated-cat.png')
        assert score == pytest.approx(0.6)
        assert 'ai-generated' in hits

    def test_single_keyword_does_not_short_circuit(self, analyzer):
        meta = analyzer.analyze(ImagePayload(src='https://example.com/img/synthetic.jpg'))
        assert meta['url_score'] == pytest.approx(0.3)
        assert not meta['short_circuit']

    def test_caption_signature(self, analyzer):
        meta = analyzer.analyze(ImagePayload(src='https://example.com/a.png', alt='Made in Midjourney v6'))
        assert meta['context_score'] == pytest.approx(0.8)
        assert meta['short_circuit']
        assert meta['confidence'] == 0.8

    def test_signature_needs_word_boundary(self, analyzer):
        score, _ = analyzer.score_context('a handsdxled lamp')
        assert score == 0.0

    def test_plain_photo_has_no_signal(self, analyzer):
        meta = analyzer.analyze(ImagePayload(src='https://example.com/holiday/beach.jpg', alt='Our beach day'))
        assert meta['url_score'] == 0.0
        assert meta['context_score'] == 0.0
        assert not meta['short_circuit']

    def test_png_generation_parameters(self, analyzer, smooth_rgb):
        info = PngInfo()
        info.add_text('parameters', 'a castle, steps: 30, sampler: euler')
        payload = ImagePayload(src='https://example.com/castle.png', image_data=png_bytes(smooth_rgb, info))
        meta = analyzer.analyze(payload)
        assert meta['short_circuit']
        assert 'software:parameters' in meta['matched']


class TestPixelPath:
    """Pixel statistics"""

    @pytest.fixture
    def analyzer(self):
        return PixelAnalyzer()

    def test_all_features_in_unit_range(self, analyzer, smooth_rgb, noisy_rgb):
        for rgb in (smooth_rgb, noisy_rgb):
            features = analyzer.analyze(ImageSample(rgb))
            assert set(features) == set(analyzer.feature_names)
            for name, value in features.items():
                assert 0.0 <= value <= 1.0, f"{name}={value}"

    def test_smooth_image_looks_more_generated(self, analyzer, smooth_rgb, noisy_rgb):
        smooth = analyzer.analyze(ImageSample(smooth_rgb))
        noisy = analyzer.analyze(ImageSample(noisy_rgb))
        assert smooth['noise_level'] > noisy['noise_level']
        assert smooth['texture_smoothness'] > noisy['texture_smoothness']
        assert smooth['high_freq_content'] > noisy['high_freq_content']

    def test_tiny_image_is_neutral(self, analyzer):
        features = analyzer.analyze(ImageSample(np.zeros((8, 8, 3), dtype=np.uint8)))
        assert features
        assert all(value == NEUTRAL for value in features.values())

    def test_subset_and_unknown_names(self, analyzer, noisy_rgb):
        features = analyzer.analyze(ImageSample(noisy_rgb), ['edge_strength', 'nope'])
        assert list(features) == ['edge_strength']

    def test_flat_image_has_no_noise(self):
        gray = np.full((64, 64), 120.0)
        assert NoiseAnalyzer().noise_level(gray) == 1.0

    def test_frequency_bands_sum_to_100(self, noisy_rgb):
        bands = NoiseAnalyzer().frequency_bands(ImageSample(noisy_rgb).gray)
        assert sum(bands.values()) == pytest.approx(100, abs=0.01)

    @pytest.mark.parametrize("area,stride", [(50_000, 1), (500_000, 2), (4_000_000, 3)])
    def test_sampling_stride(self, area, stride):
        assert sampling_stride(area) == stride


class TestSamples:
    """Decoding and pixel access"""

    def test_decode_downscales_large_images(self):
        big = np.zeros((600, 1024, 3), dtype=np.uint8)
        sample = decode_image(png_bytes(big))
        assert max(sample.width, sample.height) == 512
        assert sample.original_size == (1024, 600)
        assert sample.area == 1024 * 600

    def test_decode_garbage_raises(self):
        with pytest.raises(PixelAccessDenied):
            decode_image(b'definitely not an image')

    def test_cross_origin_raises(self, noisy_rgb):
        with pytest.raises(PixelAccessDenied):
            load_sample(ImagePayload(src='https://x/a.png', pixels=noisy_rgb, cross_origin_blocked=True))

    def test_no_pixel_data_raises(self):
        with pytest.raises(PixelAccessDenied):
            load_sample(ImagePayload(src='https://x/a.png'))

    def test_rgba_and_gray_buffers(self):
        assert ImageSample(np.zeros((20, 20, 4), dtype=np.uint8)).rgb.shape == (20, 20, 3)
        assert ImageSample(np.zeros((20, 20), dtype=np.uint8)).rgb.shape == (20, 20, 3)

    def test_payload_from_mapping(self):
        payload = ImagePayload.from_mapping({'src': 'https://x/a.png', 'width': '300', 'height': 200, 'alt': 'cat'})
        assert payload.declared_width == 300
        assert payload.declared_height == 200
        assert payload.context == 'cat'


class TestImageClassifier:
    """Short-circuit, fallback and pixel scoring"""

    @pytest.fixture
    def classifier(self):
        return LocalImageClassifier()

    def test_generator_url_needs_no_pixels(self, classifier):
        payload = ImagePayload(src='https://cdn.midjourney.com/abc/grid_0.png', cross_origin_blocked=True)
        result = classifier.quick(payload)
        assert result.metadata_only
        assert result.confidence >= 0.75
        assert result.score == pytest.approx(0.9)
        assert result.source is ScoreSource.REMOTE

    def test_blocked_pixels_fall_back_to_metadata(self, classifier):
        payload = ImagePayload(src='https://example.com/img/synthetic.jpg', cross_origin_blocked=True)
        result = classifier.quick(payload)
        assert result.metadata_only
        assert result.profile == 'image_metadata'
        assert result.score == pytest.approx(0.6 * 0.3 / (0.6 + 0.4))

    def test_pixel_scoring(self, classifier, smooth_rgb):
        result = classifier.quick(ImagePayload(src='https://example.com/a.png', pixels=smooth_rgb))
        assert not result.metadata_only
        assert result.profile == 'image_quick'
        assert 0.0 <= result.score <= 1.0
        assert 0.5 <= result.confidence <= 1.0

    @pytest.mark.asyncio
    async def test_async_extraction_matches_sync(self, noisy_rgb):
        extractor = ImageFeatureExtractor()
        payload = ImagePayload(src='https://example.com/a.png', pixels=noisy_rgb)
        sync = extractor.extract(payload)
        streamed = await extractor.extract_async(payload, yield_every=2)
        assert streamed.features == sync.features
        assert 'url_score' in streamed.features

    @pytest.mark.asyncio
    async def test_classify_uses_refined_profile(self, classifier, noisy_rgb):
        result = await classifier.classify(ImagePayload(src='https://example.com/a.png', pixels=noisy_rgb), 'k')
        assert result.profile == 'image_refined'
