"""
Configuration for the SlopShield engine.

Environment variables (optionally from a .env file) provide process-wide
defaults. The per-page EngineConfig is rebuilt from the preference store on
every discovery batch, since the user may change settings at runtime.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from dotenv import load_dotenv

from .keys import domain_of

load_dotenv()

logger = logging.getLogger(__name__)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == '':
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring non-numeric {name}={raw!r}, using {default}")
        return default


def _env_int(name: str, default: int) -> int:
    return int(_env_float(name, default))


# Detection thresholds
TEXT_THRESHOLD = _env_float('SLOPSHIELD_TEXT_THRESHOLD', 0.25)
IMAGE_THRESHOLD = _env_float('SLOPSHIELD_IMAGE_THRESHOLD', 0.25)
METADATA_MIN_CONFIDENCE = 0.75
REFINEMENT_TOLERANCE = 0.15

# Allowlist boost (page is a known AI-content generator)
CONTEXT_BOOST_FACTOR = 1.10
CONTEXT_BOOST_FLOOR = 0.15
DEFAULT_ALLOWLIST = (
    'chat.openai.com',
    'chatgpt.com',
    'claude.ai',
    'gemini.google.com',
    'midjourney.com',
    'leonardo.ai',
    'civitai.com',
)

# Discovery filters
MIN_TEXT_CHARS = 40
MIN_IMAGE_SIDE = 32
MAX_LIVE_UNITS = 2000
MAX_PENDING_EVENTS = 2000

# Refinement worklist
MAX_IN_FLIGHT = _env_int('SLOPSHIELD_MAX_IN_FLIGHT', 4)
MIN_IN_FLIGHT_BOUND = 4
MAX_IN_FLIGHT_BOUND = 8
YIELD_EVERY = 8

# Caches
TEXT_CACHE_SIZE = _env_int('SLOPSHIELD_TEXT_CACHE_SIZE', 1000)
IMAGE_CACHE_SIZE = _env_int('SLOPSHIELD_IMAGE_CACHE_SIZE', 500)

# Remote scorer
REMOTE_URL = os.getenv('SLOPSHIELD_REMOTE_URL', '')
REMOTE_TIMEOUT = _env_float('SLOPSHIELD_REMOTE_TIMEOUT', 3.0)
REMOTE_WEIGHT = 0.6

# Service / persistence
HISTORY_PATH = os.getenv(
    'SLOPSHIELD_HISTORY_PATH',
    os.path.join(os.path.expanduser('~'), '.slopshield', 'preferences.json')
)
SERVER_PORT = _env_int('SLOPSHIELD_PORT', 5000)

# Rendering
BLUR_PX = 8


class RenderMode(str, Enum):
    BLUR = 'blur'
    OUTLINE = 'outline'
    REMOVE = 'remove'


@dataclass(frozen=True)
class EngineConfig:
    """
    Immutable snapshot of the settings that drive one discovery batch.

    Build it with from_store() rather than by hand so site settings and the
    environment defaults are applied consistently.
    """
    enabled: bool = True
    mode: RenderMode = RenderMode.BLUR
    show_certainty: bool = False
    text_threshold: float = TEXT_THRESHOLD
    image_threshold: float = IMAGE_THRESHOLD
    text_min_confidence: float = 0.0
    image_min_confidence: float = 0.0
    metadata_min_confidence: float = METADATA_MIN_CONFIDENCE
    tolerance: float = REFINEMENT_TOLERANCE
    allowlist: Tuple[str, ...] = DEFAULT_ALLOWLIST
    boost_factor: float = CONTEXT_BOOST_FACTOR
    boost_floor: float = CONTEXT_BOOST_FLOOR
    catch_false_negatives: bool = False
    page_url: Optional[str] = None

    def threshold_for(self, kind) -> float:
        return self.text_threshold if getattr(kind, 'value', kind) == 'text' else self.image_threshold

    def min_confidence_for(self, kind, metadata_only: bool = False) -> float:
        if metadata_only:
            return self.metadata_min_confidence
        return self.text_min_confidence if getattr(kind, 'value', kind) == 'text' else self.image_min_confidence

    @classmethod
    def from_store(cls, store, page_url: Optional[str] = None) -> 'EngineConfig':
        """
        Read the current preferences and resolve them for one page.

        Args:
            store: PreferenceStore with optional keys enabled, mode,
                   show_certainty, thresholds, allowlist, site_settings and
                   catch_false_negatives.
            page_url: URL of the page being scanned, used for site settings.

        Returns:
            EngineConfig
        """
        thresholds = store.get('thresholds') or {}
        text_threshold = _as_unit_float(thresholds.get('text'), TEXT_THRESHOLD)
        image_threshold = _as_unit_float(thresholds.get('image'), IMAGE_THRESHOLD)

        raw_mode = store.get('mode', RenderMode.BLUR.value)
        try:
            mode = RenderMode(raw_mode)
        except ValueError:
            logger.warning(f"Unknown render mode {raw_mode!r}, falling back to blur")
            mode = RenderMode.BLUR

        allowlist = store.get('allowlist')
        allowlist = tuple(allowlist) if allowlist is not None else DEFAULT_ALLOWLIST

        enabled = bool(store.get('enabled', True))
        domain = domain_of(page_url)
        site = (store.get('site_settings') or {}).get(domain, {}) if domain else {}
        if site.get('whitelisted'):
            enabled = False
        sensitivity = site.get('sensitivity')
        if sensitivity is not None:
            text_threshold = image_threshold = _as_unit_float(sensitivity, text_threshold)

        return cls(
            enabled=enabled,
            mode=mode,
            show_certainty=bool(store.get('show_certainty', False)),
            text_threshold=text_threshold,
            image_threshold=image_threshold,
            allowlist=allowlist,
            boost_factor=min(CONTEXT_BOOST_FACTOR, float(store.get('boost_factor', CONTEXT_BOOST_FACTOR))),
            catch_false_negatives=bool(store.get('catch_false_negatives', False)),
            page_url=page_url,
        )


def _as_unit_float(value, default: float) -> float:
    if value is None:
        return default
    try:
        return max(0.0, min(1.0, float(value)))
    except (TypeError, ValueError):
        return default
