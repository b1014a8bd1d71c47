"""
SlopShield Metadata Analyzer
Scores an image's page context without touching its pixels.

Generated images are often served from generator domains, carry telltale
file names, or are captioned as AI art. This path is cheap enough to run
for every image and strong enough to skip pixel analysis when it fires.

Signals:
- url_score: source/link URL against generator domains and AI keywords
- context_score: alt, title and surrounding text against generator names
  and AI-art phrases, plus an embedded software tag when bytes are present
"""

import io
import logging
import re
from typing import Dict, List, Optional, Tuple

from PIL import Image, UnidentifiedImageError

from .sample import ImagePayload

logger = logging.getLogger(__name__)

SHORT_CIRCUIT_THRESHOLD = 0.5
URL_CONFIDENCE = 0.9
CONTEXT_CONFIDENCE = 0.8


class MetadataAnalyzer:
    """
    Image Metadata Analyzer

    Produces url_score and context_score in [0, 1] from an ImagePayload.
    """

    # Hosts and path fragments that only serve generated images
    GENERATOR_DOMAINS = [
        'midjourney.com', 'cdn.midjourney.com', 'dall-e', 'dalle',
        'stable-diffusion.com', 'thispersondoesnotexist.com',
        'thiswaifudoesnotexist.net', 'thisxdoesnotexist.com',
        'generated.photos', 'ai-generated.com', 'ai-art.com',
        'gan-generated.com', 'deepfake', 'oaidalleapiprodscus',
        'lexica.art', 'civitai.com', 'leonardo.ai', 'nightcafe.studio',
    ]

    # Weaker URL hints (file names, path segments)
    URL_KEYWORDS = [
        'ai_generated', 'ai-generated', 'aigenerated', 'ai-art', 'ai_art',
        'stable_diffusion', 'stablediffusion', 'sdxl', 'txt2img', 'img2img',
        'generated', 'synthetic',
    ]

    # Generator/tool names in captions or embedded software tags
    AI_SOFTWARE_SIGNATURES = [
        'stable diffusion', 'midjourney', 'dall-e', 'dalle',
        'novelai', 'automatic1111', 'comfyui', 'invokeai',
        'dreamstudio', 'leonardo ai', 'playground ai', 'ideogram',
        'adobe firefly', 'bing image creator', 'flux.1', 'sdxl',
    ]

    # Generic captions
    CONTEXT_PHRASES = [
        'ai generated', 'ai-generated', 'generated by ai', 'generated with ai',
        'created with ai', 'made with ai', 'ai art', 'ai image', '#aiart',
        'text-to-image', 'prompt:',
    ]

    # PNG text chunks written by generation front-ends
    GENERATOR_INFO_KEYS = ['parameters', 'prompt', 'workflow', 'sd-metadata', 'dream']

    def analyze(self, payload: ImagePayload) -> Dict:
        """
        Analyze an image's page context.

        Args:
            payload: ImagePayload (image bytes are optional)

        Returns:
            dict with url_score, context_score, matched signatures and a
            short_circuit flag
        """
        url_score, url_hits = self.score_url(payload.src, payload.link_url)
        context_score, context_hits = self.score_context(payload.context)

        software = self._embedded_software(payload.image_data) if payload.image_data else None
        if software:
            context_hits.append(f'software:{software}')
            context_score = max(context_score, CONTEXT_CONFIDENCE)

        short_circuit = url_score > SHORT_CIRCUIT_THRESHOLD or context_score > SHORT_CIRCUIT_THRESHOLD
        if url_hits or context_hits:
            logger.debug(f"Metadata signals for {payload.src[:60]}: url={url_hits} context={context_hits}")

        return {
            'url_score': url_score,
            'context_score': context_score,
            'matched': url_hits + context_hits,
            'short_circuit': short_circuit,
            'confidence': self.confidence(url_score, context_score) if short_circuit else None,
        }

    def score_url(self, *urls: str) -> Tuple[float, List[str]]:
        joined = ' '.join(u.lower() for u in urls if u)
        if not joined:
            return 0.0, []
        domain_hits = [d for d in self.GENERATOR_DOMAINS if d in joined]
        if domain_hits:
            return URL_CONFIDENCE, domain_hits
        keyword_hits = [k for k in self.URL_KEYWORDS if k in joined]
        return min(0.6, 0.3 * len(keyword_hits)), keyword_hits

    def score_context(self, text: str) -> Tuple[float, List[str]]:
        lower = (text or '').lower()
        if not lower:
            return 0.0, []
        signature_hits = [s for s in self.AI_SOFTWARE_SIGNATURES if _contains_phrase(lower, s)]
        phrase_hits = [p for p in self.CONTEXT_PHRASES if p in lower]
        score = 0.8 if signature_hits else 0.0
        score = min(1.0, score + 0.35 * len(phrase_hits))
        return score, signature_hits + phrase_hits

    @staticmethod
    def confidence(url_score: float, context_score: float) -> float:
        """Metadata-only confidence: URL evidence is the stronger of the two."""
        if url_score > SHORT_CIRCUIT_THRESHOLD:
            return URL_CONFIDENCE
        return CONTEXT_CONFIDENCE

    def _embedded_software(self, image_data: bytes) -> Optional[str]:
        """Generator name from EXIF Software or PNG text chunks, if any."""
        try:
            image = Image.open(io.BytesIO(image_data))
        except (UnidentifiedImageError, OSError, ValueError) as e:
            logger.debug(f"Could not open image for metadata: {e}")
            return None

        for key in self.GENERATOR_INFO_KEYS:
            if key in image.info:
                return key

        try:
            exif = image.getexif()
        except (OSError, ValueError) as e:
            logger.debug(f"Could not extract EXIF: {e}")
            return None
        # 0x0131 Software, 0x000B ProcessingSoftware
        for tag_id in (0x0131, 0x000B):
            value = exif.get(tag_id)
            if isinstance(value, bytes):
                value = value.decode('utf-8', errors='ignore')
            if value:
                software = str(value).lower()
                for signature in self.AI_SOFTWARE_SIGNATURES:
                    if signature in software:
                        return signature
        return None


def _contains_phrase(text: str, phrase: str) -> bool:
    return re.search(r'(?<![a-z0-9])' + re.escape(phrase) + r'(?![a-z0-9])', text) is not None
